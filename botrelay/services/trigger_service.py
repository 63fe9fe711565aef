import re
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from botrelay.logging_config import get_logger
from botrelay.models import BotDefinition, BotSession
from botrelay.services.state_machine import is_live

logger = get_logger("trigger_service")


class TriggerType(str, Enum):
    ALL = "all"
    KEYWORD = "keyword"
    ADVANCED = "advanced"
    NONE = "none"


class TriggerOperator(str, Enum):
    EQUALS = "equals"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"


_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _sort_key(bot: BotDefinition) -> tuple:
    created_at = bot.created_at if isinstance(bot.created_at, datetime) else _EPOCH
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return (created_at, str(bot.id))


def order_bots(bots: Iterable[BotDefinition]) -> list[BotDefinition]:
    """Deterministic evaluation order: oldest bot first, id as tie-breaker."""
    return sorted(bots, key=_sort_key)


def keyword_matches(operator: Optional[str], value: Optional[str], content: str) -> bool:
    """Case-sensitive keyword comparison."""
    if not value:
        return False
    if operator == TriggerOperator.EQUALS.value:
        return content == value
    if operator == TriggerOperator.CONTAINS.value:
        return value in content
    if operator == TriggerOperator.STARTS_WITH.value:
        return content.startswith(value)
    if operator == TriggerOperator.ENDS_WITH.value:
        return content.endswith(value)
    return False


def advanced_matches(pattern: Optional[str], content: str) -> bool:
    if not pattern:
        return False
    try:
        return re.search(pattern, content) is not None
    except re.error as e:
        logger.warning(f"Invalid advanced trigger pattern {pattern!r}: {e}")
        return False


def matches_trigger(bot: BotDefinition, content: Optional[str]) -> bool:
    content = content or ""
    trigger_type = bot.trigger_type
    if trigger_type == TriggerType.ALL.value:
        return True
    if trigger_type == TriggerType.KEYWORD.value:
        return keyword_matches(bot.trigger_operator, bot.trigger_value, content)
    if trigger_type == TriggerType.ADVANCED.value:
        return advanced_matches(bot.trigger_value, content)
    return False


def match_bot(
    content: Optional[str],
    bots: Iterable[BotDefinition],
    current_session: Optional[BotSession] = None,
    fallback_bot_id: Optional[UUID] = None,
) -> Optional[BotDefinition]:
    """Pick the bot that claims this message, or None.

    A live session keeps talking to its bound bot; triggers are only evaluated
    for conversations without one. With no trigger match the fallback bot is
    used when it exists and is enabled.
    """
    enabled = [bot for bot in bots if bot.enabled]

    if current_session is not None and is_live(current_session.status) and current_session.bot_id:
        for bot in enabled:
            if bot.id == current_session.bot_id:
                return bot
        logger.warning(
            "Session bot not found or disabled",
            extra={"context": {"session_id": str(current_session.id), "bot_id": str(current_session.bot_id)}},
        )
        return None

    for bot in order_bots(enabled):
        if matches_trigger(bot, content):
            return bot

    if fallback_bot_id:
        for bot in enabled:
            if bot.id == fallback_bot_id:
                logger.debug(f"Using fallback bot {bot.id}")
                return bot
    return None


def find_bot(
    db: Session,
    instance_id: UUID,
    family: str,
    content: Optional[str],
    current_session: Optional[BotSession] = None,
    fallback_bot_id: Optional[UUID] = None,
) -> Optional[BotDefinition]:
    """Load the family's bots for the instance and run the matcher over them."""
    bots = (
        db.query(BotDefinition)
        .filter(BotDefinition.instance_id == instance_id, BotDefinition.family == family)
        .all()
    )
    return match_bot(content, bots, current_session=current_session, fallback_bot_id=fallback_bot_id)
