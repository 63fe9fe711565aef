import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.sql import func

from botrelay.database import Base


class OverrideColumnsMixin:
    """Settings that a bot may override on top of the instance defaults.

    NULL means "not set here"; the resolver then looks one level up.
    """

    expire_minutes = Column(Integer)
    keyword_finish = Column(Text)
    reply_delay_ms = Column(Integer)
    unknown_message_text = Column(Text)
    listening_from_me = Column(Boolean)
    stop_bot_from_me = Column(Boolean)
    keep_open_on_close = Column(Boolean)
    debounce_seconds = Column(Integer)
    ignored_jids = Column(JSON)
    split_messages = Column(Boolean)
    ms_per_character = Column(Integer)


class BotDefinition(OverrideColumnsMixin, Base):
    __tablename__ = "bots"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    instance_id = Column(Uuid, ForeignKey("instances.id"), nullable=False)
    family = Column(Text, nullable=False)  # openai, dify, flowise, evolution
    enabled = Column(Boolean, nullable=False, default=True)
    description = Column(Text)
    trigger_type = Column(Text, nullable=False, default="keyword")  # all, keyword, advanced, none
    trigger_operator = Column(Text)  # equals, contains, startsWith, endsWith
    trigger_value = Column(Text)
    config = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class BotSettings(OverrideColumnsMixin, Base):
    __tablename__ = "bot_settings"
    __table_args__ = (UniqueConstraint("instance_id", "family", name="uq_bot_settings_instance_family"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    instance_id = Column(Uuid, ForeignKey("instances.id"), nullable=False)
    family = Column(Text, nullable=False)
    enabled = Column(Boolean, nullable=False, default=True)
    fallback_bot_id = Column(Uuid, ForeignKey("bots.id", ondelete="SET NULL"))
