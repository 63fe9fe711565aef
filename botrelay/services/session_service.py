from datetime import datetime, timezone
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from botrelay.logging_config import get_logger
from botrelay.models import BotSession
from botrelay.services.state_machine import SessionStatus, close, pause, reopen

logger = get_logger("session_service")

ALL_GROUPS_MARKER = "@g.us"
ALL_CONTACTS_MARKER = "@s.whatsapp.net"


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_ignored_jid(ignored_jids: Optional[Iterable[str]], remote_jid: str) -> bool:
    """Check the ignore list, honouring the "all groups" / "all contacts" markers."""
    ignored = set(ignored_jids or ())
    if not ignored:
        return False
    if ALL_GROUPS_MARKER in ignored and remote_jid.endswith(ALL_GROUPS_MARKER):
        return True
    if ALL_CONTACTS_MARKER in ignored and remote_jid.endswith(ALL_CONTACTS_MARKER):
        return True
    return remote_jid in ignored


def get_live_session(db: Session, instance_id: UUID, remote_jid: str, family: str) -> Optional[BotSession]:
    """Newest session that is not closed for this conversation and family."""
    return (
        db.query(BotSession)
        .filter(
            BotSession.instance_id == instance_id,
            BotSession.remote_jid == remote_jid,
            BotSession.family == family,
            BotSession.status != SessionStatus.CLOSED.value,
        )
        .order_by(BotSession.created_at.desc())
        .first()
    )


def create_session(
    db: Session,
    *,
    instance_id: UUID,
    remote_jid: str,
    family: str,
    bot_id: UUID,
    push_name: Optional[str] = None,
) -> BotSession:
    """Open a session that is already claimed by the creating turn (awaiting_user=False)."""
    now = datetime.now(timezone.utc)
    session = BotSession(
        instance_id=instance_id,
        remote_jid=remote_jid,
        family=family,
        bot_id=bot_id,
        status=SessionStatus.OPENED.value,
        awaiting_user=False,
        session_token=remote_jid,
        push_name=push_name,
        created_at=now,
        updated_at=now,
    )
    db.add(session)
    db.flush()
    logger.info(f"Opened {family} session {session.id} for {remote_jid}, bot={bot_id}")
    return session


def is_expired(session: BotSession, expire_minutes: int, now: Optional[datetime] = None) -> bool:
    """Whole minutes of inactivity since updated_at exceed expire_minutes. 0 disables expiry."""
    if not expire_minutes or expire_minutes <= 0:
        return False
    updated_at = _as_utc(session.updated_at)
    if updated_at is None:
        return False
    now = now or datetime.now(timezone.utc)
    idle_minutes = int((now - updated_at).total_seconds() // 60)
    return idle_minutes > expire_minutes


def claim_turn(db: Session, session_id: UUID) -> bool:
    """Atomically take the awaiting-user gate for one turn.

    Returns False when another turn already holds it or the session is no
    longer opened.
    """
    result = db.execute(
        update(BotSession)
        .where(
            BotSession.id == session_id,
            BotSession.awaiting_user.is_(True),
            BotSession.status == SessionStatus.OPENED.value,
        )
        .values(awaiting_user=False)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def release_session(db: Session, session_id: UUID, session_token: Optional[str] = None) -> bool:
    """Hand the gate back to the user after a turn.

    Status is left as is: a session closed while the backend call was in
    flight stays closed. Returns False when the row no longer exists.
    """
    values = {"awaiting_user": True, "updated_at": datetime.now(timezone.utc)}
    if session_token:
        values["session_token"] = session_token
    result = db.execute(
        update(BotSession)
        .where(BotSession.id == session_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount == 0:
        logger.warning(f"Session {session_id} disappeared before release")
        return False
    return True


def close_session(db: Session, session: BotSession, keep_open: bool) -> None:
    """Close a live session: keep the record as closed, or delete it."""
    if keep_open:
        session.status = close(SessionStatus(session.status)).value
        session.awaiting_user = False
        session.updated_at = datetime.now(timezone.utc)
        logger.info(f"Closed session {session.id} (kept)")
    else:
        logger.info(f"Deleted session {session.id}")
        db.delete(session)
    db.flush()


def pause_session(db: Session, session: BotSession) -> None:
    session.status = pause(SessionStatus(session.status)).value
    session.updated_at = datetime.now(timezone.utc)
    db.flush()
    logger.info(f"Paused session {session.id}")


def reopen_session(db: Session, session: BotSession) -> None:
    session.status = reopen(SessionStatus(session.status)).value
    session.awaiting_user = True
    session.updated_at = datetime.now(timezone.utc)
    db.flush()
    logger.info(f"Reopened session {session.id}")


def fetch_sessions(
    db: Session,
    instance_id: UUID,
    family: str,
    *,
    bot_id: Optional[UUID] = None,
    remote_jid: Optional[str] = None,
) -> list[BotSession]:
    query = db.query(BotSession).filter(BotSession.instance_id == instance_id, BotSession.family == family)
    if bot_id:
        query = query.filter(BotSession.bot_id == bot_id)
    if remote_jid:
        query = query.filter(BotSession.remote_jid == remote_jid)
    return query.order_by(BotSession.created_at).all()
