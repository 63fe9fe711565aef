from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest

from botrelay.services.trigger_service import (
    advanced_matches,
    find_bot,
    keyword_matches,
    match_bot,
    order_bots,
)

BASE = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _bot(trigger_type="keyword", operator=None, value=None, enabled=True, age=0):
    return SimpleNamespace(
        id=uuid4(),
        enabled=enabled,
        trigger_type=trigger_type,
        trigger_operator=operator,
        trigger_value=value,
        created_at=BASE + timedelta(seconds=age),
    )


def _session(bot, status="opened"):
    return SimpleNamespace(id=uuid4(), bot_id=bot.id, status=status)


class TestKeywordMatches:
    @pytest.mark.parametrize(
        "operator,value,content,expected",
        [
            ("equals", "hi", "hi", True),
            ("equals", "hi", "hi there", False),
            ("contains", "price", "what is the price?", True),
            ("startsWith", "/bot", "/bot help", True),
            ("startsWith", "/bot", "help /bot", False),
            ("endsWith", "?", "really?", True),
            ("equals", "Hi", "hi", False),
            ("unknown", "hi", "hi", False),
        ],
    )
    def test_operators(self, operator, value, content, expected):
        assert keyword_matches(operator, value, content) is expected

    def test_empty_value_never_matches(self):
        assert keyword_matches("contains", "", "anything") is False


class TestAdvancedMatches:
    def test_regex_search(self):
        assert advanced_matches(r"order\s+#\d+", "status of order #42 please") is True

    def test_invalid_pattern_is_no_match(self):
        assert advanced_matches("([", "anything") is False


class TestMatchBot:
    def test_live_session_keeps_its_bot(self):
        bound = _bot(value="sales", operator="equals")
        catch_all = _bot(trigger_type="all", age=-10)
        chosen = match_bot("anything", [catch_all, bound], current_session=_session(bound))
        assert chosen is bound

    def test_paused_session_still_keeps_its_bot(self):
        bound = _bot(trigger_type="all")
        assert match_bot("x", [bound], current_session=_session(bound, status="paused")) is bound

    def test_session_bot_disabled_returns_none_without_fallback(self):
        bound = _bot(trigger_type="all", enabled=False)
        fallback = _bot(trigger_type="none")
        chosen = match_bot("x", [bound, fallback], current_session=_session(bound), fallback_bot_id=fallback.id)
        assert chosen is None

    def test_closed_session_evaluates_triggers(self):
        old = _bot(trigger_type="all")
        keyword = _bot(operator="equals", value="hi", age=-5)
        chosen = match_bot("hi", [old, keyword], current_session=_session(old, status="closed"))
        assert chosen is keyword

    def test_oldest_matching_bot_wins(self):
        younger = _bot(operator="contains", value="help", age=10)
        older = _bot(operator="contains", value="help", age=1)
        assert match_bot("help me", [younger, older]) is older

    def test_disabled_bots_are_skipped(self):
        disabled = _bot(trigger_type="all", enabled=False, age=0)
        enabled = _bot(operator="equals", value="hi", age=5)
        assert match_bot("hi", [disabled, enabled]) is enabled

    def test_none_trigger_never_matches_directly(self):
        assert match_bot("hi", [_bot(trigger_type="none")]) is None

    def test_fallback_used_when_nothing_matches(self):
        keyword = _bot(operator="equals", value="sales")
        fallback = _bot(trigger_type="none")
        assert match_bot("hello", [keyword, fallback], fallback_bot_id=fallback.id) is fallback

    def test_disabled_fallback_is_ignored(self):
        fallback = _bot(trigger_type="none", enabled=False)
        assert match_bot("hello", [fallback], fallback_bot_id=fallback.id) is None

    def test_order_bots_tie_breaks_on_id(self):
        first = _bot(age=0)
        second = _bot(age=0)
        ordered = order_bots([second, first])
        assert [str(b.id) for b in ordered] == sorted([str(first.id), str(second.id)])


class TestFindBot:
    def test_loads_only_the_family_bots(self, db, instance, make_bot):
        make_bot(family="dify", trigger_type="all")
        openai_bot = make_bot(family="openai", trigger_type="keyword", trigger_operator="equals", trigger_value="hi")

        assert find_bot(db, instance.id, "openai", "hi").id == openai_bot.id
        assert find_bot(db, instance.id, "openai", "bye") is None
        assert find_bot(db, instance.id, "flowise", "hi") is None
