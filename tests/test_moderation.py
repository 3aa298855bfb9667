"""Tests for the moderation state machine and its audit trail."""

import logging

import pytest

from tally.errors import ForbiddenError, InvalidTransition, ValidationError
from tally.events import STATUS_CHANGED
from tally.models import ModerationStatus as S
from tally.moderation import SYSTEM_ACTOR, can_transition, crosses_threshold


# --- Transition table Tests ---


def test_transition_table():
    assert can_transition(S.pending, S.flagged)
    assert can_transition(S.flagged, S.rejected)
    assert can_transition(S.under_review, S.approved)
    assert can_transition(S.approved, S.under_review)
    assert can_transition(S.rejected, S.under_review)
    assert not can_transition(S.approved, S.rejected)
    assert not can_transition(S.rejected, S.approved)
    assert not can_transition(S.under_review, S.pending)
    assert not can_transition(S.flagged, S.pending)


def test_threshold_crossing_fires_once():
    assert crosses_threshold(2, 3, 3)
    assert not crosses_threshold(0, 1, 3)
    assert not crosses_threshold(3, 4, 3)


# --- Manual transition Tests ---


def test_moderator_transition_writes_audit_and_notifies(engine, people, post, events):
    entry = engine.transition(people.mod.id, post.id, "post", "approved", "looks fine")

    assert (entry.from_status, entry.to_status, entry.actor) == (S.pending, S.approved, people.mod.id)
    assert engine.get_content(post.id, "post").moderation_status is S.approved

    changed = events.of_type(STATUS_CHANGED)
    assert len(changed) == 1
    assert changed[0].recipient_id == people.alice.id
    assert changed[0].payload["to_status"] == "approved"


def test_illegal_transition_is_rejected(engine, people, post):
    engine.transition(people.mod.id, post.id, "post", "approved")
    with pytest.raises(InvalidTransition) as exc:
        engine.transition(people.mod.id, post.id, "post", "rejected")
    assert isinstance(exc.value, ValidationError)
    assert len(engine.audit_trail(post.id, "post")) == 1


def test_reopen_then_reject(engine, people, post):
    engine.transition(people.mod.id, post.id, "post", "approved")
    engine.transition(people.mod.id, post.id, "post", "under_review", "second look")
    engine.transition(people.mod.id, post.id, "post", "rejected")

    trail = engine.audit_trail(post.id, "post")
    assert [(e.from_status, e.to_status) for e in trail] == [
        (S.pending, S.approved),
        (S.approved, S.under_review),
        (S.under_review, S.rejected),
    ]


def test_non_moderator_cannot_transition(engine, people, post, caplog):
    with caplog.at_level(logging.WARNING, logger="tally.security"):
        with pytest.raises(ForbiddenError):
            engine.transition(people.bob.id, post.id, "post", "approved")
    assert any(r.name == "tally.security" for r in caplog.records)


def test_moderator_cannot_moderate_own_content(engine, people):
    own = engine.submit_content(people.mod.id, "moderator's own post", "post").id
    with pytest.raises(ForbiddenError):
        engine.transition(people.mod.id, own, "post", "approved")


def test_moderator_with_open_report_cannot_moderate(engine, people, post):
    engine.submit_report(people.mod.id, post.id, "post", "Spam")
    with pytest.raises(ForbiddenError):
        engine.transition(people.mod.id, post.id, "post", "rejected")
    engine.transition(people.mod2.id, post.id, "post", "rejected")


def test_automatic_flag_is_audited_as_system(engine, people, post):
    for reporter in (people.bob, people.carol, people.dave):
        engine.submit_report(reporter.id, post.id, "post", "Harassment")

    trail = engine.audit_trail(post.id, "post")
    assert len(trail) == 1
    assert trail[0].actor == SYSTEM_ACTOR
    assert trail[0].to_status is S.flagged
