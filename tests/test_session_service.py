from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from botrelay.models import BotSession
from botrelay.services.session_service import (
    claim_turn,
    close_session,
    create_session,
    fetch_sessions,
    get_live_session,
    is_expired,
    is_ignored_jid,
    release_session,
)

JID = "77015556677@s.whatsapp.net"


def _open_session(db, instance, bot, jid=JID):
    session = create_session(db, instance_id=instance.id, remote_jid=jid, family=bot.family, bot_id=bot.id)
    db.commit()
    return session


class TestIgnoredJids:
    def test_exact_match(self):
        assert is_ignored_jid([JID], JID) is True
        assert is_ignored_jid(["other@s.whatsapp.net"], JID) is False

    def test_all_groups_marker(self):
        assert is_ignored_jid(["@g.us"], "1203630@g.us") is True
        assert is_ignored_jid(["@g.us"], JID) is False

    def test_all_contacts_marker(self):
        assert is_ignored_jid(["@s.whatsapp.net"], JID) is True
        assert is_ignored_jid(["@s.whatsapp.net"], "1203630@g.us") is False

    def test_empty_list(self):
        assert is_ignored_jid(None, JID) is False
        assert is_ignored_jid((), JID) is False


class TestIsExpired:
    NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def _session(self, idle):
        return SimpleNamespace(updated_at=self.NOW - idle)

    def test_zero_disables_expiry(self):
        assert is_expired(self._session(timedelta(days=30)), 0, now=self.NOW) is False

    def test_whole_minutes_must_exceed_limit(self):
        assert is_expired(self._session(timedelta(minutes=10, seconds=59)), 10, now=self.NOW) is False
        assert is_expired(self._session(timedelta(minutes=11)), 10, now=self.NOW) is True

    def test_naive_timestamps_are_utc(self):
        session = SimpleNamespace(updated_at=(self.NOW - timedelta(minutes=20)).replace(tzinfo=None))
        assert is_expired(session, 5, now=self.NOW) is True


class TestSessionLifecycle:
    def test_new_session_is_claimed_by_its_turn(self, db, instance, make_bot):
        bot = make_bot()
        session = _open_session(db, instance, bot)

        assert session.status == "opened"
        assert session.awaiting_user is False
        assert session.session_token == JID

    def test_claim_is_exclusive(self, db, instance, make_bot):
        session = _open_session(db, instance, make_bot())
        release_session(db, session.id)

        assert claim_turn(db, session.id) is True
        assert claim_turn(db, session.id) is False

    def test_claim_fails_for_paused_session(self, db, instance, make_bot):
        session = _open_session(db, instance, make_bot())
        release_session(db, session.id)
        session.status = "paused"
        db.commit()

        assert claim_turn(db, session.id) is False

    def test_release_stores_backend_token_and_keeps_status(self, db, instance, make_bot):
        session = _open_session(db, instance, make_bot())
        session.status = "paused"
        db.commit()

        assert release_session(db, session.id, session_token="conv-123") is True
        db.expire_all()
        stored = db.get(BotSession, session.id)
        assert stored.awaiting_user is True
        assert stored.session_token == "conv-123"
        assert stored.status == "paused"

    def test_release_of_deleted_session_reports_false(self, db, instance, make_bot):
        session = _open_session(db, instance, make_bot())
        session_id = session.id
        close_session(db, session, keep_open=False)
        db.commit()

        assert release_session(db, session_id) is False

    def test_close_keep_open_keeps_record(self, db, instance, make_bot):
        session = _open_session(db, instance, make_bot())
        close_session(db, session, keep_open=True)
        db.commit()

        assert db.get(BotSession, session.id).status == "closed"
        assert get_live_session(db, instance.id, JID, "openai") is None

    def test_live_session_lookup_is_per_family(self, db, instance, make_bot):
        _open_session(db, instance, make_bot(family="dify"))

        assert get_live_session(db, instance.id, JID, "openai") is None
        assert get_live_session(db, instance.id, JID, "dify") is not None

    def test_fetch_sessions_filters(self, db, instance, make_bot):
        bot = make_bot()
        _open_session(db, instance, bot)
        _open_session(db, instance, bot, jid="other@s.whatsapp.net")

        assert len(fetch_sessions(db, instance.id, "openai")) == 2
        assert len(fetch_sessions(db, instance.id, "openai", remote_jid=JID)) == 1
        assert fetch_sessions(db, instance.id, "dify") == []
