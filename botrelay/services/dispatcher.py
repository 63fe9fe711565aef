"""Fan one inbound message out to every bot family."""

import asyncio
from functools import partial
from typing import Callable, Optional

from sqlalchemy.orm import Session

from botrelay.logging_config import get_logger
from botrelay.models import BotSettings
from botrelay.services.channel.base import ChannelClient
from botrelay.services.content_service import InboundMessage, parse_inbound
from botrelay.services.debounce import DebounceCoalescer
from botrelay.services.providers.base import ProviderAdapter
from botrelay.services.session_service import get_live_session, is_ignored_jid, pause_session
from botrelay.services.settings_resolver import resolve
from botrelay.services.state_machine import SessionStatus
from botrelay.services.trigger_service import find_bot
from botrelay.services.turn_service import TurnContext, run_turn

logger = get_logger("dispatcher")


def get_bot_settings(db: Session, instance_id, family: str) -> Optional[BotSettings]:
    return (
        db.query(BotSettings)
        .filter(BotSettings.instance_id == instance_id, BotSettings.family == family)
        .first()
    )


class Dispatcher:
    """Entry point for inbound channel messages.

    Each family runs trigger matching and the pre-turn checks independently,
    then hands the fragment to its own debounce coalescer. The coalesced turn
    runs the session state machine, the provider call and reply delivery.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        providers: dict[str, ProviderAdapter],
        channel_factory: Callable[[object], ChannelClient],
        sleep_func=asyncio.sleep,
    ):
        self._session_factory = session_factory
        self._providers = dict(providers)
        self._channel_factory = channel_factory
        self._sleep = sleep_func
        self._coalescers = {family: DebounceCoalescer(sleep_func=sleep_func) for family in self._providers}

    @property
    def families(self) -> list[str]:
        return list(self._providers)

    async def on_inbound_message(self, instance, conversation_id: str, raw_event: dict) -> dict[str, str]:
        """Dispatch to all families concurrently. Returns the outcome per family."""
        inbound = parse_inbound(raw_event, conversation_id)
        channel = self._channel_factory(instance)
        logger.debug(
            "Inbound message",
            extra={
                "context": {
                    "instance": instance.name,
                    "jid": conversation_id,
                    "message_id": inbound.message_id,
                    "type": inbound.message_type,
                    "from_me": inbound.from_me,
                }
            },
        )

        families = self.families
        results = await asyncio.gather(
            *(self._dispatch_family(family, instance, conversation_id, inbound, channel) for family in families),
            return_exceptions=True,
        )

        outcomes: dict[str, str] = {}
        for family, result in zip(families, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Family dispatch failed",
                    extra={"context": {"family": family, "jid": conversation_id, "error": str(result)}},
                )
                outcomes[family] = "error"
            else:
                outcomes[family] = result
        return outcomes

    async def _dispatch_family(
        self,
        family: str,
        instance,
        remote_jid: str,
        inbound: InboundMessage,
        channel: ChannelClient,
    ) -> str:
        db = self._session_factory()
        try:
            defaults = get_bot_settings(db, instance.id, family)
            if defaults is not None and not defaults.enabled:
                return "disabled"
            if defaults is not None and is_ignored_jid(defaults.ignored_jids, remote_jid):
                logger.debug(f"Ignoring {remote_jid} for {family}")
                return "ignored"

            session = get_live_session(db, instance.id, remote_jid, family)
            bot = find_bot(
                db,
                instance.id,
                family,
                inbound.content,
                current_session=session,
                fallback_bot_id=defaults.fallback_bot_id if defaults is not None else None,
            )
            if bot is None:
                return "no_bot"

            settings = resolve(defaults, bot)
            if is_ignored_jid(settings.ignored_jids, remote_jid):
                return "ignored"

            if inbound.from_me and settings.stop_bot_from_me and session is not None:
                if session.status == SessionStatus.OPENED.value:
                    pause_session(db, session)
                    db.commit()
                    return "paused"
                return "ignored_from_me"

            if inbound.from_me and not settings.listening_from_me:
                return "ignored_from_me"

            if session is not None and not session.awaiting_user and session.status != SessionStatus.CLOSED.value:
                logger.info(
                    "Session not awaiting user, dropping message",
                    extra={"context": {"family": family, "jid": remote_jid, "session_id": str(session.id)}},
                )
                return "rejected_busy"

            ctx = TurnContext(
                instance_id=instance.id,
                instance_name=instance.name,
                family=family,
                remote_jid=remote_jid,
                bot=bot,
                settings=settings,
                push_name=inbound.push_name,
            )
        finally:
            db.close()

        await self._coalescers[family].on_fragment(
            (instance.id, remote_jid),
            inbound.content,
            settings.debounce_seconds,
            partial(self._run_turn, ctx, channel),
        )
        return "accepted"

    async def _run_turn(self, ctx: TurnContext, channel: ChannelClient, content: str) -> None:
        db = self._session_factory()
        try:
            result = await run_turn(
                db,
                ctx,
                content,
                provider=self._providers[ctx.family],
                channel=channel,
                sleep_func=self._sleep,
            )
            context = {**ctx.log_context, "outcome": result.outcome}
            if result.ok:
                logger.info("Turn finished", extra={"context": context})
            else:
                logger.warning("Turn failed", extra={"context": {**context, "error": result.error}})
        except Exception as e:
            db.rollback()
            logger.error(
                "Turn crashed",
                extra={"context": {**ctx.log_context, "error": str(e)}},
                exc_info=True,
            )
        finally:
            db.close()

    async def drain(self) -> None:
        """Wait for every pending debounce timer and running turn."""
        for coalescer in self._coalescers.values():
            await coalescer.drain()

    def shutdown(self) -> None:
        for coalescer in self._coalescers.values():
            coalescer.cancel_all()
