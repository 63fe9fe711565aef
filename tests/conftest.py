import os
from datetime import datetime, timedelta, timezone

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from botrelay.database import Base
from botrelay.models import BotDefinition, BotSettings, Instance
from botrelay.services.channel.base import ChannelClient
from botrelay.services.providers.base import ProviderAdapter, ProviderError, ProviderReply

OWNER_JID = "77010000000@s.whatsapp.net"


class FakeChannel(ChannelClient):
    """Records everything sent instead of calling ChatFlow."""

    def __init__(self):
        self.sent = []
        self.presence = []
        self.fail_text = False

    async def send_text(self, remote_jid, text):
        if self.fail_text:
            return False
        self.sent.append(("text", remote_jid, text))
        return True

    async def send_media(self, remote_jid, media_type, url, caption=None):
        self.sent.append((media_type, remote_jid, url, caption))
        return True

    async def set_presence(self, remote_jid, presence):
        self.presence.append((remote_jid, presence))
        return True

    @property
    def texts(self):
        return [item[2] for item in self.sent if item[0] == "text"]


class FakeProvider(ProviderAdapter):
    """Scripted backend: replies in order, can fail or block until released."""

    family = "openai"

    def __init__(self, replies=None, error=None, gate=None, session_token=None):
        super().__init__()
        self.replies = list(replies or ["hello"])
        self.error = error
        self.gate = gate
        self.session_token = session_token
        self.calls = []

    async def send(self, bot, request):
        self.calls.append((bot.id, request.content, request.session_token))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise ProviderError(self.error)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        return ProviderReply(reply_text=reply, session_token=self.session_token)


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'botrelay.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def instance(db):
    instance = Instance(name="main", owner_jid=OWNER_JID, status="open", config={"instance_id": "cf-main"})
    db.add(instance)
    db.commit()
    db.refresh(instance)
    return instance


@pytest.fixture
def make_bot(db, instance):
    """Create a bot; each call is one second younger than the previous one."""
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    counter = {"n": 0}

    def _make(family="openai", trigger_type="all", **fields):
        counter["n"] += 1
        created_at = fields.pop("created_at", base + timedelta(seconds=counter["n"]))
        bot = BotDefinition(
            instance_id=instance.id,
            family=family,
            enabled=fields.pop("enabled", True),
            trigger_type=trigger_type,
            config=fields.pop("config", {}),
            created_at=created_at,
            updated_at=created_at,
            **fields,
        )
        db.add(bot)
        db.commit()
        db.refresh(bot)
        return bot

    return _make


@pytest.fixture
def make_settings(db, instance):
    def _make(family="openai", **fields):
        row = BotSettings(instance_id=instance.id, family=family, enabled=fields.pop("enabled", True), **fields)
        db.add(row)
        db.commit()
        db.refresh(row)
        return row

    return _make


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def make_provider():
    return FakeProvider
