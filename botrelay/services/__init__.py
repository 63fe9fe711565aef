from botrelay.services.debounce import DebounceCoalescer
from botrelay.services.dispatcher import Dispatcher
from botrelay.services.result import Result
from botrelay.services.settings_resolver import EffectiveSettings, resolve
from botrelay.services.state_machine import (
    InvalidTransitionError,
    SessionStatus,
    can_transition,
    close,
    pause,
    reopen,
    transition,
)
from botrelay.services.trigger_service import match_bot
from botrelay.services.turn_service import TurnContext, run_turn

__all__ = [
    "DebounceCoalescer",
    "Dispatcher",
    "EffectiveSettings",
    "InvalidTransitionError",
    "Result",
    "SessionStatus",
    "TurnContext",
    "can_transition",
    "close",
    "match_bot",
    "pause",
    "reopen",
    "resolve",
    "run_turn",
    "transition",
]
