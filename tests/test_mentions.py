"""Tests for mention extraction, delivery and reconciliation."""

import pytest

from tally.errors import ValidationError
from tally.events import MENTION_CREATED
from tally.mentions import extract_mentions, normalize_handle


# --- Extraction Tests ---


def test_extract_dedupes_in_order_and_lowercases():
    assert extract_mentions("hi @Alice and @bob, @ALICE again") == ["alice", "bob"]


def test_extract_ignores_emails():
    assert extract_mentions("write to bob@example.com") == []


def test_extract_skips_overlong_tokens():
    assert extract_mentions("@" + "a" * 31) == []
    assert extract_mentions("@" + "a" * 30) == ["a" * 30]


def test_extract_stops_at_punctuation():
    assert extract_mentions("thanks @a_b. and (@c1)") == ["a_b", "c1"]


def test_extract_caps_handles():
    text = " ".join(f"@user{i}" for i in range(40))
    handles = extract_mentions(text)
    assert len(handles) == 25
    assert handles[0] == "user0"
    assert handles[-1] == "user24"


def test_normalize_handle():
    assert normalize_handle(" @Bob ") == "bob"
    with pytest.raises(ValidationError):
        normalize_handle("bo b")
    with pytest.raises(ValidationError):
        normalize_handle("")


# --- Notifier Tests ---


def test_mentions_notify_resolved_users_but_not_author(engine, people, events):
    result = engine.submit_content(people.alice.id, "hey @bob @alice @ghost", "comment")

    assert result.mentions == ["bob", "alice", "ghost"]
    notified = events.of_type(MENTION_CREATED)
    assert [e.recipient_id for e in notified] == [people.bob.id]
    assert notified[0].payload["content_id"] == result.id

    stored = engine.mentions_for(result.id, "comment")
    assert [m.handle for m in stored] == ["bob", "alice", "ghost"]


def test_reconcile_delivers_once_handle_resolves(engine, people, events):
    engine.submit_content(people.alice.id, "waiting on @ghost", "post")
    assert events.of_type(MENTION_CREATED) == []

    ghost = engine.register_user("Ghost")

    delivered = events.of_type(MENTION_CREATED)
    assert [e.recipient_id for e in delivered] == [ghost.id]
    assert engine.reconcile_mentions("ghost") == 0


def test_failing_handler_does_not_block_creation(engine, people):
    def broken(event):
        raise RuntimeError("push gateway down")

    engine.bus.subscribe(MENTION_CREATED, broken)
    result = engine.submit_content(people.alice.id, "ping @bob", "post")

    assert engine.get_content(result.id, "post").body == "ping @bob"
    assert result.mentions == ["bob"]


def test_mention_failure_never_rolls_back_content(engine, people, monkeypatch):
    def explode(content):
        raise RuntimeError("extractor crashed")

    monkeypatch.setattr(engine.mentions, "_process", explode)
    result = engine.submit_content(people.alice.id, "ping @bob", "post")

    assert result.mentions == []
    assert engine.get_content(result.id, "post").author_id == people.alice.id
