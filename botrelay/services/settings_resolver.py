"""Merge instance-wide bot settings with a single bot's overrides."""

from dataclasses import dataclass, field, fields
from typing import Any, Optional
from uuid import UUID

DEFAULT_REPLY_DELAY_MS = 1000


@dataclass(frozen=True)
class EffectiveSettings:
    expire_minutes: int = 0
    keyword_finish: str = ""
    reply_delay_ms: int = DEFAULT_REPLY_DELAY_MS
    unknown_message_text: str = ""
    listening_from_me: bool = False
    stop_bot_from_me: bool = False
    keep_open_on_close: bool = False
    debounce_seconds: int = 0
    ignored_jids: tuple[str, ...] = field(default_factory=tuple)
    split_messages: bool = False
    ms_per_character: int = 0
    fallback_bot_id: Optional[UUID] = None


# Fields a bot definition can override. fallback_bot_id is instance-wide only.
OVERRIDE_FIELDS = tuple(f.name for f in fields(EffectiveSettings) if f.name != "fallback_bot_id")

BUILTIN_DEFAULTS = EffectiveSettings()


def _pick(name: str, bot: Any, instance_defaults: Any) -> Any:
    for source in (bot, instance_defaults):
        if source is None:
            continue
        value = getattr(source, name, None)
        if value is not None:
            return value
    return getattr(BUILTIN_DEFAULTS, name)


def resolve(instance_defaults: Any, bot: Any) -> EffectiveSettings:
    """Build the settings in effect for one turn.

    The bot's value wins whenever it is not None (an explicit False, 0 or ""
    counts as set), then the instance default, then the built-in default.
    Either argument may be None.
    """
    values = {name: _pick(name, bot, instance_defaults) for name in OVERRIDE_FIELDS}
    values["ignored_jids"] = tuple(values["ignored_jids"] or ())
    values["fallback_bot_id"] = getattr(instance_defaults, "fallback_bot_id", None) if instance_defaults else None
    return EffectiveSettings(**values)
