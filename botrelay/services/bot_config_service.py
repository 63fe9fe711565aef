"""Configuration side of the bot families: bots, instance defaults, sessions.

Invariants that the dispatch engine relies on are enforced here, at write
time: one enabled ``all`` bot per instance and family, no duplicate keyword or
advanced triggers, valid regular expressions.
"""

import re
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from botrelay.logging_config import get_logger
from botrelay.models import BotDefinition, BotSession, BotSettings, Instance
from botrelay.services.session_service import close_session, pause_session, reopen_session
from botrelay.services.settings_resolver import OVERRIDE_FIELDS
from botrelay.services.state_machine import SessionStatus
from botrelay.services.trigger_service import TriggerOperator, TriggerType

logger = get_logger("bot_config_service")

BOT_FIELDS = ("enabled", "description", "trigger_type", "trigger_operator", "trigger_value", "config") + OVERRIDE_FIELDS
SETTINGS_FIELDS = ("enabled", "fallback_bot_id") + OVERRIDE_FIELDS
SESSION_ACTIONS = {"opened", "paused", "closed", "delete"}


class BotConfigError(Exception):
    """Rejected configuration change."""


class NotFoundError(BotConfigError):
    pass


def get_instance_by_name(db: Session, name: str) -> Instance:
    instance = db.query(Instance).filter(Instance.name == name).first()
    if not instance:
        raise NotFoundError(f"Instance {name} not found")
    return instance


def _validate_trigger(data: dict) -> None:
    trigger_type = data.get("trigger_type")
    if trigger_type not in {t.value for t in TriggerType}:
        raise BotConfigError(f"Unknown trigger type: {trigger_type}")

    if trigger_type == TriggerType.KEYWORD.value:
        if not data.get("trigger_operator") or not data.get("trigger_value"):
            raise BotConfigError('Operator and value are required for the "keyword" trigger')
        if data["trigger_operator"] not in {op.value for op in TriggerOperator}:
            raise BotConfigError(f"Unknown trigger operator: {data['trigger_operator']}")
    elif trigger_type == TriggerType.ADVANCED.value:
        if not data.get("trigger_value"):
            raise BotConfigError('Value is required for the "advanced" trigger')
        try:
            re.compile(data["trigger_value"])
        except re.error as e:
            raise BotConfigError(f"Invalid advanced trigger pattern: {e}") from e


def _check_trigger_conflicts(
    db: Session,
    instance_id: UUID,
    family: str,
    data: dict,
    exclude_id: Optional[UUID] = None,
) -> None:
    query = db.query(BotDefinition).filter(
        BotDefinition.instance_id == instance_id,
        BotDefinition.family == family,
    )
    if exclude_id is not None:
        query = query.filter(BotDefinition.id != exclude_id)

    trigger_type = data.get("trigger_type")
    if trigger_type == TriggerType.ALL.value and data.get("enabled", True):
        clash = query.filter(
            BotDefinition.enabled.is_(True),
            BotDefinition.trigger_type == TriggerType.ALL.value,
        ).first()
        if clash:
            raise BotConfigError(f'An enabled {family} bot with trigger "all" already exists ({clash.id})')
    elif trigger_type == TriggerType.KEYWORD.value:
        clash = query.filter(
            BotDefinition.trigger_type == TriggerType.KEYWORD.value,
            BotDefinition.trigger_operator == data.get("trigger_operator"),
            BotDefinition.trigger_value == data.get("trigger_value"),
        ).first()
        if clash:
            raise BotConfigError(f"Duplicate keyword trigger: {data['trigger_operator']} {data['trigger_value']}")
    elif trigger_type == TriggerType.ADVANCED.value:
        clash = query.filter(
            BotDefinition.trigger_type == TriggerType.ADVANCED.value,
            BotDefinition.trigger_value == data.get("trigger_value"),
        ).first()
        if clash:
            raise BotConfigError(f"Duplicate advanced trigger: {data['trigger_value']}")


def _clean(data: dict[str, Any], allowed: tuple[str, ...]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if key in allowed}


def create_bot(db: Session, instance: Instance, family: str, data: dict[str, Any]) -> BotDefinition:
    data = _clean(data, BOT_FIELDS)
    data.setdefault("trigger_type", TriggerType.KEYWORD.value)
    data.setdefault("enabled", True)
    _validate_trigger(data)
    _check_trigger_conflicts(db, instance.id, family, data)

    now = datetime.now(timezone.utc)
    bot = BotDefinition(instance_id=instance.id, family=family, created_at=now, updated_at=now, **data)
    if bot.config is None:
        bot.config = {}
    db.add(bot)
    db.flush()
    logger.info(f"Created {family} bot {bot.id} for instance {instance.name}")
    return bot


def fetch_bot(db: Session, instance: Instance, family: str, bot_id: UUID) -> BotDefinition:
    bot = db.query(BotDefinition).filter(BotDefinition.id == bot_id).first()
    if not bot or bot.instance_id != instance.id or bot.family != family:
        raise NotFoundError(f"{family} bot {bot_id} not found")
    return bot


def find_bots(db: Session, instance: Instance, family: str) -> list[BotDefinition]:
    return (
        db.query(BotDefinition)
        .filter(BotDefinition.instance_id == instance.id, BotDefinition.family == family)
        .order_by(BotDefinition.created_at)
        .all()
    )


def update_bot(db: Session, instance: Instance, family: str, bot_id: UUID, data: dict[str, Any]) -> BotDefinition:
    bot = fetch_bot(db, instance, family, bot_id)
    changes = _clean(data, BOT_FIELDS)

    merged = {
        "enabled": bot.enabled,
        "trigger_type": bot.trigger_type,
        "trigger_operator": bot.trigger_operator,
        "trigger_value": bot.trigger_value,
    }
    merged.update({key: value for key, value in changes.items() if key in merged})
    _validate_trigger(merged)
    _check_trigger_conflicts(db, instance.id, family, merged, exclude_id=bot.id)

    for key, value in changes.items():
        setattr(bot, key, value)
    bot.updated_at = datetime.now(timezone.utc)
    db.flush()
    logger.info(f"Updated {family} bot {bot.id}")
    return bot


def delete_bot(db: Session, instance: Instance, family: str, bot_id: UUID) -> UUID:
    bot = fetch_bot(db, instance, family, bot_id)
    db.query(BotSession).filter(BotSession.bot_id == bot.id).delete(synchronize_session=False)
    db.query(BotSettings).filter(BotSettings.fallback_bot_id == bot.id).update(
        {"fallback_bot_id": None}, synchronize_session=False
    )
    db.delete(bot)
    db.flush()
    logger.info(f"Deleted {family} bot {bot_id}")
    return bot_id


def fetch_settings(db: Session, instance: Instance, family: str) -> Optional[BotSettings]:
    return (
        db.query(BotSettings)
        .filter(BotSettings.instance_id == instance.id, BotSettings.family == family)
        .first()
    )


def set_settings(db: Session, instance: Instance, family: str, data: dict[str, Any]) -> BotSettings:
    """Upsert the instance defaults; keys absent from ``data`` are left unchanged."""
    changes = _clean(data, SETTINGS_FIELDS)
    fallback_id = changes.get("fallback_bot_id")
    if fallback_id is not None:
        fetch_bot(db, instance, family, fallback_id)

    row = fetch_settings(db, instance, family)
    if row is None:
        row = BotSettings(instance_id=instance.id, family=family, enabled=True)
        db.add(row)
    for key, value in changes.items():
        if key == "enabled" and value is None:
            continue
        setattr(row, key, value)
    db.flush()
    return row


def ignore_jid(db: Session, instance: Instance, family: str, remote_jid: str, action: str) -> list[str]:
    if action not in {"add", "remove"}:
        raise BotConfigError(f"Unknown ignore action: {action}")
    row = fetch_settings(db, instance, family)
    if row is None:
        row = set_settings(db, instance, family, {})

    ignored = list(row.ignored_jids or [])
    if action == "add" and remote_jid not in ignored:
        ignored.append(remote_jid)
    elif action == "remove":
        ignored = [jid for jid in ignored if jid != remote_jid]
    # Reassign so the JSON column is flagged dirty.
    row.ignored_jids = ignored
    db.flush()
    return ignored


def change_session_status(db: Session, instance: Instance, family: str, remote_jid: str, status: str) -> int:
    """Force the status of a conversation's sessions. Returns the number of sessions touched."""
    if status not in SESSION_ACTIONS:
        raise BotConfigError(f"Unknown session status: {status}")

    query = db.query(BotSession).filter(
        BotSession.instance_id == instance.id,
        BotSession.family == family,
        BotSession.remote_jid == remote_jid,
    )
    if status == "delete":
        count = query.delete(synchronize_session=False)
        db.flush()
        return count

    defaults = fetch_settings(db, instance, family)
    keep_open = bool(defaults.keep_open_on_close) if defaults is not None else False

    touched = 0
    for session in query.filter(BotSession.status != SessionStatus.CLOSED.value).all():
        if session.status == status:
            continue
        if status == SessionStatus.CLOSED.value:
            close_session(db, session, keep_open=keep_open)
        elif status == SessionStatus.PAUSED.value:
            pause_session(db, session)
        else:
            reopen_session(db, session)
        touched += 1
    return touched
