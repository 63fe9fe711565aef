import pytest
from fastapi.testclient import TestClient

from botrelay.database import get_db
from botrelay.main import app
from botrelay.models import BotSession
from botrelay.routers.webhook import get_dispatcher
from botrelay.services.dispatcher import Dispatcher

REMOTE_JID = "77015556677@s.whatsapp.net"


async def _no_wait(seconds):
    return None


@pytest.fixture
def dispatcher(session_factory, provider, channel):
    return Dispatcher(
        session_factory=session_factory,
        providers={"openai": provider},
        channel_factory=lambda instance: channel,
        sleep_func=_no_wait,
    )


@pytest.fixture
def client(session_factory, dispatcher):
    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _upsert(text, from_me=False):
    return {
        "event": "messages.upsert",
        "instance": "main",
        "data": {
            "key": {"remoteJid": REMOTE_JID, "fromMe": from_me, "id": "ABC123"},
            "pushName": "Aida",
            "message": {"conversation": text},
        },
    }


class TestWebhook:
    def test_message_is_dispatched(self, client, instance, make_bot, provider, channel, db):
        make_bot()

        response = client.post("/webhook/main", json=_upsert("hi"))

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["outcomes"] == {"openai": "accepted"}
        assert channel.texts == ["hello"]
        assert db.query(BotSession).count() == 1

    def test_bare_message_payload(self, client, instance, make_bot, provider):
        make_bot()
        payload = _upsert("hi")["data"]

        response = client.post("/webhook/main", json=payload)

        assert response.json()["outcomes"] == {"openai": "accepted"}
        assert provider.calls[0][1] == "hi"

    def test_unknown_instance(self, client):
        response = client.post("/webhook/ghost", json=_upsert("hi"))
        assert response.status_code == 200
        assert response.json()["success"] is False

    def test_other_events_are_ignored(self, client, instance, make_bot, provider):
        make_bot()
        response = client.post("/webhook/main", json={"event": "connection.update", "data": {}})
        assert response.json()["success"] is True
        assert provider.calls == []

    def test_missing_remote_jid(self, client, instance):
        response = client.post("/webhook/main", json={"message": {"conversation": "hi"}})
        assert response.json()["success"] is False

    def test_secret_is_enforced(self, client, instance, make_bot, db):
        make_bot()
        instance.config = {"webhook_secret": "s3cret"}
        db.commit()

        assert client.post("/webhook/main", json=_upsert("hi")).status_code == 401
        wrong = client.post("/webhook/main", json=_upsert("hi"), headers={"X-Webhook-Secret": "nope"})
        assert wrong.status_code == 401
        ok = client.post("/webhook/main", json=_upsert("hi"), headers={"X-Webhook-Secret": "s3cret"})
        assert ok.status_code == 200

    def test_get_reachability_check(self, client):
        response = client.get("/webhook/main")
        assert response.json()["ok"] is True


class TestBotsApi:
    def test_create_list_update_delete(self, client, instance):
        created = client.post("/bots/openai/main", json={"trigger_type": "all", "config": {"api_key": "sk"}})
        assert created.status_code == 201
        bot_id = created.json()["id"]
        assert created.json()["config"] == {"api_key": "sk"}

        listed = client.get("/bots/openai/main")
        assert [b["id"] for b in listed.json()] == [bot_id]

        updated = client.put(f"/bots/openai/main/{bot_id}", json={"description": "front desk", "expire_minutes": 15})
        assert updated.status_code == 200
        assert updated.json()["description"] == "front desk"
        assert updated.json()["expire_minutes"] == 15

        assert client.delete(f"/bots/openai/main/{bot_id}").status_code == 200
        assert client.get(f"/bots/openai/main/{bot_id}").status_code == 404

    def test_second_all_bot_is_rejected(self, client, instance):
        assert client.post("/bots/openai/main", json={"trigger_type": "all"}).status_code == 201
        response = client.post("/bots/openai/main", json={"trigger_type": "all"})
        assert response.status_code == 400
        assert "already exists" in response.json()["detail"]

    def test_keyword_without_value_is_rejected(self, client, instance):
        response = client.post("/bots/openai/main", json={"trigger_type": "keyword", "trigger_operator": "equals"})
        assert response.status_code == 400

    def test_unknown_family_or_instance(self, client, instance):
        assert client.get("/bots/typebot/main").status_code == 404
        assert client.get("/bots/openai/ghost").status_code == 404

    def test_settings_defaults_and_upsert(self, client, instance):
        defaults = client.get("/bots/dify/main/settings")
        assert defaults.status_code == 200
        assert defaults.json()["enabled"] is True
        assert defaults.json()["expire_minutes"] is None

        saved = client.put("/bots/dify/main/settings", json={"expire_minutes": 30, "keyword_finish": "#exit"})
        assert saved.json()["expire_minutes"] == 30

        again = client.put("/bots/dify/main/settings", json={"debounce_seconds": 5})
        assert again.json()["keyword_finish"] == "#exit"
        assert again.json()["debounce_seconds"] == 5

    def test_ignore_jid(self, client, instance):
        response = client.post("/bots/openai/main/ignore-jid", json={"remote_jid": "@g.us", "action": "add"})
        assert response.json() == {"ignored_jids": ["@g.us"]}

    def test_change_status_and_fetch_sessions(self, client, instance, make_bot):
        make_bot()
        client.post("/webhook/main", json=_upsert("hi"))

        sessions = client.get("/bots/openai/main/sessions", params={"remote_jid": REMOTE_JID}).json()
        assert len(sessions) == 1
        assert sessions[0]["status"] == "opened"

        paused = client.post("/bots/openai/main/status", json={"remote_jid": REMOTE_JID, "status": "paused"})
        assert paused.json()["sessions"] == 1
        assert client.get("/bots/openai/main/sessions").json()[0]["status"] == "paused"

        client.post("/bots/openai/main/status", json={"remote_jid": REMOTE_JID, "status": "delete"})
        assert client.get("/bots/openai/main/sessions").json() == []


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
