import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Text, Uuid
from sqlalchemy.sql import func

from botrelay.database import Base


class BotSession(Base):
    __tablename__ = "bot_sessions"
    __table_args__ = (Index("ix_bot_sessions_lookup", "instance_id", "remote_jid", "family", "status"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    instance_id = Column(Uuid, ForeignKey("instances.id"), nullable=False)
    family = Column(Text, nullable=False)
    remote_jid = Column(Text, nullable=False)
    bot_id = Column(Uuid, ForeignKey("bots.id", ondelete="CASCADE"), nullable=False)
    status = Column(Text, nullable=False, default="opened")  # opened, paused, closed
    awaiting_user = Column(Boolean, nullable=False, default=False)
    session_token = Column(Text)  # backend conversation id, starts as remote_jid
    push_name = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
