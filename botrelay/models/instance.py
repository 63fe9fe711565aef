import uuid

from sqlalchemy import JSON, Column, DateTime, Text, Uuid
from sqlalchemy.sql import func

from botrelay.database import Base


class Instance(Base):
    __tablename__ = "instances"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False, unique=True)
    owner_jid = Column(Text)
    status = Column(Text, nullable=False, default="open")  # open, connecting, close
    config = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    @property
    def chatflow_instance_id(self):
        """ChatFlow instance id used by the channel; falls back to the instance name."""
        if self.config and self.config.get("instance_id"):
            return self.config.get("instance_id")
        return self.name
