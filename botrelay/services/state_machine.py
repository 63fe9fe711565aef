from enum import Enum


class SessionStatus(str, Enum):
    OPENED = "opened"
    PAUSED = "paused"
    CLOSED = "closed"


VALID_TRANSITIONS = {
    SessionStatus.OPENED: [SessionStatus.PAUSED, SessionStatus.CLOSED],
    SessionStatus.PAUSED: [SessionStatus.OPENED, SessionStatus.CLOSED],
    SessionStatus.CLOSED: [],
}


class InvalidTransitionError(Exception):
    def __init__(self, from_state: SessionStatus, to_state: SessionStatus):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state.value} -> {to_state.value}")


def can_transition(from_state: SessionStatus, to_state: SessionStatus) -> bool:
    """Check if transition is valid."""
    allowed = VALID_TRANSITIONS.get(from_state, [])
    return to_state in allowed


def transition(from_state: SessionStatus, to_state: SessionStatus) -> SessionStatus:
    """Perform state transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_state, to_state):
        raise InvalidTransitionError(from_state, to_state)
    return to_state


def pause(current_state: SessionStatus) -> SessionStatus:
    """Owner took over the chat: stop the bot until reopened."""
    return transition(current_state, SessionStatus.PAUSED)


def reopen(current_state: SessionStatus) -> SessionStatus:
    """Resume a paused session."""
    return transition(current_state, SessionStatus.OPENED)


def close(current_state: SessionStatus) -> SessionStatus:
    """Close a live session. Closed is terminal; a new message starts a fresh session."""
    return transition(current_state, SessionStatus.CLOSED)


def is_live(status: str) -> bool:
    """Opened and paused sessions still belong to the conversation; closed ones do not."""
    return status != SessionStatus.CLOSED.value
