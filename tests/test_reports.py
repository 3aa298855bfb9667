"""Tests for report intake, resolution and the moderation queue."""

import pytest

from tally.errors import ForbiddenError, NotFoundError, Unauthorized, ValidationError
from tally.events import REPORT_RESOLVED
from tally.models import ModerationStatus as S
from tally.models import ReportStatus

from conftest import make_engine


def _reporters(engine, count):
    return [engine.register_user(f"reporter{i}") for i in range(count)]


# --- Intake Tests ---


def test_unknown_reason_creates_nothing(engine, people, post):
    with pytest.raises(ValidationError):
        engine.submit_report(people.bob.id, post.id, "post", "NotAReason")
    assert engine.query_moderation_queue().items == []


def test_report_on_missing_content(engine, people):
    with pytest.raises(NotFoundError):
        engine.submit_report(people.bob.id, "missing", "post", "Spam")


def test_repeat_report_updates_context(engine, people, post):
    first = engine.submit_report(people.bob.id, post.id, "post", "Spam", "links everywhere")
    second = engine.submit_report(people.bob.id, post.id, "post", "Spam", "also a scam")

    assert first.created and not second.created
    assert second.report_id == first.report_id
    assert engine.get_report(first.report_id).context == "also a scam"
    assert len(engine.query_moderation_queue().items) == 1


def test_threshold_flags_on_third_report_only(engine, people, post):
    engine.submit_report(people.bob.id, post.id, "post", "Spam")
    receipt = engine.submit_report(people.carol.id, post.id, "post", "Spam")
    assert receipt.content_status is S.pending

    receipt = engine.submit_report(people.dave.id, post.id, "post", "Spam")
    assert receipt.content_status is S.flagged

    for reporter in [people.mod, *_reporters(engine, 3)]:
        receipt = engine.submit_report(reporter.id, post.id, "post", "Spam")
        assert receipt.created
        assert receipt.content_status is S.flagged
    assert len(engine.audit_trail(post.id, "post")) == 1


def test_threshold_flags_approved_content(engine, people, post):
    engine.transition(people.mod.id, post.id, "post", "approved")
    for reporter in _reporters(engine, 3):
        engine.submit_report(reporter.id, post.id, "post", "Misinformation")
    assert engine.get_content(post.id, "post").moderation_status is S.flagged


def test_threshold_ignored_while_under_review(engine, people, post):
    engine.transition(people.mod.id, post.id, "post", "under_review")
    for reporter in _reporters(engine, 3):
        engine.submit_report(reporter.id, post.id, "post", "Spam")
    assert engine.get_content(post.id, "post").moderation_status is S.under_review


def test_daily_report_limit():
    engine = make_engine(daily_report_limit=2)
    author = engine.register_user("author")
    reporter = engine.register_user("reporter")
    posts = [engine.submit_content(author.id, f"post {i}", "post").id for i in range(3)]

    engine.submit_report(reporter.id, posts[0], "post", "Spam")
    engine.submit_report(reporter.id, posts[1], "post", "Spam")
    with pytest.raises(ForbiddenError):
        engine.submit_report(reporter.id, posts[2], "post", "Spam")
    engine.close()


def test_context_length_is_bounded(engine, people, post):
    with pytest.raises(ValidationError):
        engine.submit_report(people.bob.id, post.id, "post", "Other", "x" * 1001)


def test_unknown_reporter_is_rejected_before_payload_checks(engine, post):
    with pytest.raises(Unauthorized):
        engine.submit_report("ghost", post.id, "post", "NotAReason")
    with pytest.raises(Unauthorized):
        engine.submit_report(None, post.id, "post", "Other", "x" * 1001)


# --- Resolution Tests ---


def test_reject_takes_action_and_leaves_siblings_open(engine, people, post, events):
    mine = engine.submit_report(people.bob.id, post.id, "post", "Spam").report_id
    sibling = engine.submit_report(people.carol.id, post.id, "post", "Spam").report_id

    resolution = engine.resolve_report(people.mod.id, mine, "reject", "confirmed spam")

    assert resolution.status is ReportStatus.action_taken
    assert resolution.content_status is S.rejected
    assert engine.get_report(sibling).status is ReportStatus.pending
    report = engine.get_report(mine)
    assert report.reviewed_by == people.mod.id and report.reviewed_at is not None

    resolved = events.of_type(REPORT_RESOLVED)
    assert [e.recipient_id for e in resolved] == [people.bob.id]
    assert resolved[0].payload["decision"] == "reject"


def test_report_outlives_its_reporter(engine, people, post, events):
    report_id = engine.submit_report(people.bob.id, post.id, "post", "Spam").report_id
    engine.delete_user(people.bob.id, people.bob.id)

    assert engine.get_report(report_id).reporter_id is None
    resolution = engine.resolve_report(people.mod.id, report_id, "reject")

    assert resolution.content_status is S.rejected
    assert events.of_type(REPORT_RESOLVED) == []
    assert engine.get_user(people.alice.id).upheld_reports == 1


def test_resolving_terminal_report_fails(engine, people, post):
    report_id = engine.submit_report(people.bob.id, post.id, "post", "Spam").report_id
    engine.resolve_report(people.mod.id, report_id, "dismiss")
    with pytest.raises(ValidationError):
        engine.resolve_report(people.mod.id, report_id, "reject")


def test_dismiss_leaves_content_alone(engine, people, post):
    report_id = engine.submit_report(people.bob.id, post.id, "post", "Other").report_id
    resolution = engine.resolve_report(people.mod.id, report_id, "dismiss")

    assert resolution.status is ReportStatus.dismissed
    assert resolution.content_status is S.pending
    assert engine.audit_trail(post.id, "post") == []


def test_escalate_keeps_report_open(engine, people, post):
    report_id = engine.submit_report(people.bob.id, post.id, "post", "Violence or Threats").report_id
    escalated = engine.resolve_report(people.mod.id, report_id, "escalate")
    assert (escalated.status, escalated.content_status) == (ReportStatus.reviewed, S.under_review)

    final = engine.resolve_report(people.mod2.id, report_id, "reject")
    assert (final.status, final.content_status) == (ReportStatus.action_taken, S.rejected)


def test_approve_reopens_rejected_content(engine, people, post):
    engine.transition(people.mod.id, post.id, "post", "rejected")
    report_id = engine.submit_report(people.bob.id, post.id, "post", "Other").report_id

    resolution = engine.resolve_report(people.mod2.id, report_id, "approve")

    assert resolution.content_status is S.approved
    trail = engine.audit_trail(post.id, "post")
    assert [e.to_status for e in trail] == [S.rejected, S.under_review, S.approved]


def test_approve_when_already_approved_writes_no_audit(engine, people, post):
    engine.transition(people.mod.id, post.id, "post", "approved")
    report_id = engine.submit_report(people.bob.id, post.id, "post", "Other").report_id
    engine.resolve_report(people.mod2.id, report_id, "approve")
    assert len(engine.audit_trail(post.id, "post")) == 1


def test_resolver_must_be_impartial_moderator(engine, people, post):
    report_id = engine.submit_report(people.mod.id, post.id, "post", "Spam").report_id
    with pytest.raises(ForbiddenError):
        engine.resolve_report(people.mod.id, report_id, "reject")
    with pytest.raises(ForbiddenError):
        engine.resolve_report(people.bob.id, report_id, "reject")

    own = engine.submit_content(people.mod2.id, "mod2 writes too", "post").id
    other = engine.submit_report(people.bob.id, own, "post", "Spam").report_id
    with pytest.raises(ForbiddenError):
        engine.resolve_report(people.mod2.id, other, "dismiss")

    assert engine.get_report(report_id).status is ReportStatus.pending


def test_unknown_report_and_decision(engine, people, post):
    with pytest.raises(NotFoundError):
        engine.resolve_report(people.mod.id, "missing", "reject")
    report_id = engine.submit_report(people.bob.id, post.id, "post", "Spam").report_id
    with pytest.raises(ValidationError):
        engine.resolve_report(people.mod.id, report_id, "obliterate")


# --- Queue Tests ---


def _fill_queue(engine, people, count):
    ids = []
    author = people.alice.id
    for i, reporter in enumerate(_reporters(engine, count)):
        content_id = engine.submit_content(author, f"post {i}", "post").id
        ids.append(engine.submit_report(reporter.id, content_id, "post", "Spam").report_id)
    return ids


def test_queue_pages_newest_first_with_tokens(engine, people):
    ids = _fill_queue(engine, people, 5)

    first = engine.query_moderation_queue(page_size=2)
    second = engine.query_moderation_queue(page_size=2, page_token=first.next_page_token)
    third = engine.query_moderation_queue(page_size=2, page_token=second.next_page_token)

    seen = [r.id for r in first.items + second.items + third.items]
    assert seen == list(reversed(ids))
    assert third.next_page_token is None


def test_queue_token_is_stable_under_new_reports(engine, people):
    ids = _fill_queue(engine, people, 4)
    first = engine.query_moderation_queue(page_size=2)
    late = engine.submit_content(people.alice.id, "late", "post").id
    engine.submit_report(people.bob.id, late, "post", "Spam")

    second = engine.query_moderation_queue(page_size=2, page_token=first.next_page_token)
    assert [r.id for r in second.items] == [ids[1], ids[0]]


def test_queue_offset_paging_and_clamping(engine, people):
    ids = _fill_queue(engine, people, 3)

    page2 = engine.query_moderation_queue(page=2, page_size=2)
    assert [r.id for r in page2.items] == [ids[0]]

    assert engine.query_moderation_queue(page_size=500).page_size == 50
    assert engine.query_moderation_queue(page_size=0).page_size == 1


def test_queue_status_filter(engine, people):
    ids = _fill_queue(engine, people, 3)
    engine.resolve_report(people.mod.id, ids[0], "dismiss")

    pending = engine.query_moderation_queue(status_filter="pending")
    everything = engine.query_moderation_queue()
    assert [r.id for r in pending.items] == [ids[2], ids[1]]
    assert len(everything.items) == 3

    with pytest.raises(ValidationError):
        engine.query_moderation_queue(status_filter="archived")


def test_queue_rejects_malformed_token(engine):
    with pytest.raises(ValidationError):
        engine.query_moderation_queue(page_token="not-a-token!")


def test_report_stats(engine, people, post):
    for reporter in (people.bob, people.carol, people.dave):
        engine.submit_report(reporter.id, post.id, "post", "Hate Speech")

    stats = engine.report_stats()
    assert stats["by_status"]["pending"] == 3
    assert stats["by_reason"]["Hate Speech"] == 3
    assert stats["by_priority"]["critical"] == 3
    assert stats["over_threshold"] == [
        {"content_id": post.id, "content_type": "post", "open_reports": 3}
    ]
