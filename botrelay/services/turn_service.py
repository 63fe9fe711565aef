from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from botrelay.logging_config import get_logger
from botrelay.services.channel.base import ChannelClient
from botrelay.services.providers.base import ProviderAdapter, ProviderRequest
from botrelay.services.reply_service import deliver_reply
from botrelay.services.result import Result
from botrelay.services.session_service import (
    claim_turn,
    close_session,
    create_session,
    get_live_session,
    is_expired,
    release_session,
)
from botrelay.services.settings_resolver import EffectiveSettings
from botrelay.services.state_machine import SessionStatus

logger = get_logger("turn_service")


@dataclass(frozen=True)
class TurnContext:
    instance_id: UUID
    instance_name: str
    family: str
    remote_jid: str
    bot: object
    settings: EffectiveSettings
    push_name: Optional[str] = None

    @property
    def log_context(self) -> dict:
        return {
            "instance": self.instance_name,
            "family": self.family,
            "jid": self.remote_jid,
            "bot_id": str(getattr(self.bot, "id", "")),
        }


def is_finish_keyword(content: str, keyword_finish: str) -> bool:
    """Case-insensitive exact match against the finish keyword."""
    if not keyword_finish:
        return False
    return content.strip().lower() == keyword_finish.strip().lower()


async def run_turn(
    db: Session,
    ctx: TurnContext,
    content: Optional[str],
    *,
    provider: ProviderAdapter,
    channel: ChannelClient,
    now: Optional[datetime] = None,
    sleep_func=None,
) -> Result[str]:
    """Advance the session by one coalesced turn.

    Success values: replied, finished, unknown_message, dropped_empty,
    dropped_paused, rejected_busy. Failure codes: provider_error when the
    backend call fails, turn_error for any other failure after the session
    was claimed. Once claimed, the session is always handed back to the user
    unless the finish keyword closed it.
    """
    settings = ctx.settings
    content = content or ""
    now = now or datetime.now(timezone.utc)
    deliver_kwargs = {"sleep_func": sleep_func} if sleep_func else {}

    session = get_live_session(db, ctx.instance_id, ctx.remote_jid, ctx.family)

    if session is not None and session.status == SessionStatus.PAUSED.value:
        logger.debug("Session paused, dropping turn", extra={"context": ctx.log_context})
        return Result.success("dropped_paused")

    if session is not None and is_expired(session, settings.expire_minutes, now=now):
        logger.info(
            "Session expired",
            extra={"context": {**ctx.log_context, "session_id": str(session.id), "expire": settings.expire_minutes}},
        )
        # An expired session is replaced below and this same message is answered by the new one.
        close_session(db, session, keep_open=settings.keep_open_on_close)
        db.commit()
        session = None

    if session is None:
        if is_finish_keyword(content, settings.keyword_finish):
            logger.debug("Finish keyword without a live session", extra={"context": ctx.log_context})
            return Result.success("finished")
        session = create_session(
            db,
            instance_id=ctx.instance_id,
            remote_jid=ctx.remote_jid,
            family=ctx.family,
            bot_id=ctx.bot.id,
            push_name=ctx.push_name,
        )
        db.commit()
    elif not claim_turn(db, session.id):
        logger.info("Backend call already in flight, dropping turn", extra={"context": ctx.log_context})
        return Result.success("rejected_busy")

    session_id = session.id
    new_token = None
    release = True
    try:
        if not content.strip():
            if settings.unknown_message_text:
                await deliver_reply(channel, ctx.remote_jid, settings.unknown_message_text, settings, **deliver_kwargs)
                return Result.success("unknown_message")
            logger.debug("Empty content, dropping turn", extra={"context": ctx.log_context})
            return Result.success("dropped_empty")

        if is_finish_keyword(content, settings.keyword_finish):
            logger.info("Finish keyword received", extra={"context": ctx.log_context})
            close_session(db, session, keep_open=settings.keep_open_on_close)
            db.commit()
            release = False
            return Result.success("finished")

        request = ProviderRequest(
            remote_jid=ctx.remote_jid,
            content=content,
            session_token=session.session_token,
            settings=settings,
            push_name=ctx.push_name,
            instance_name=ctx.instance_name,
        )
        try:
            reply = await provider.send(ctx.bot, request)
        except Exception as e:
            logger.error(
                "Provider call failed",
                extra={"context": {**ctx.log_context, "error": str(e)}},
            )
            await _send_unknown_message(channel, ctx, **deliver_kwargs)
            return Result.failure(str(e), "provider_error")

        new_token = reply.session_token
        delivered = await deliver_reply(channel, ctx.remote_jid, reply.reply_text, settings, **deliver_kwargs)
        logger.info(
            "Turn complete",
            extra={"context": {**ctx.log_context, "session_id": str(session_id), "delivered": delivered}},
        )
        return Result.success("replied")
    except Exception as e:
        db.rollback()
        logger.error(
            "Turn failed after the session was claimed",
            extra={"context": {**ctx.log_context, "session_id": str(session_id), "error": str(e)}},
            exc_info=True,
        )
        await _send_unknown_message(channel, ctx, **deliver_kwargs)
        return Result.failure(str(e), "turn_error")
    finally:
        # The gate goes back to the user on every path except a finished session.
        if release:
            release_session(db, session_id, session_token=new_token)


async def _send_unknown_message(channel: ChannelClient, ctx: TurnContext, **deliver_kwargs) -> None:
    text = ctx.settings.unknown_message_text
    if not text:
        return
    try:
        await deliver_reply(channel, ctx.remote_jid, text, ctx.settings, **deliver_kwargs)
    except Exception as e:
        logger.error(
            "Unknown-message reply failed",
            extra={"context": {**ctx.log_context, "error": str(e)}},
        )
