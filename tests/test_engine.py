"""End-to-end scenario through the Tally facade."""

from tally.events import MENTION_CREATED, REPORT_RESOLVED, STATUS_CHANGED
from tally.models import ModerationStatus as S
from tally.models import ReportStatus
from tally.moderation import SYSTEM_ACTOR


def test_downvotes_reports_flag_and_reject(engine, people, events):
    engine.set_verified(people.alice.id)
    post_id = engine.submit_content(
        people.alice.id, "Hot take, cc @bob", "post", ["opinion"]
    ).id

    for voter in (people.bob, people.carol, people.dave):
        result = engine.cast_vote(voter.id, post_id, "post", "downvote")
    assert result.net_score == -3

    engine.submit_report(people.bob.id, post_id, "post", "Harassment", "name-calling")
    engine.submit_report(people.carol.id, post_id, "post", "Harassment")
    assert engine.get_content(post_id, "post").moderation_status is S.pending

    third = engine.submit_report(people.dave.id, post_id, "post", "Harassment")
    assert third.content_status is S.flagged

    resolution = engine.resolve_report(people.mod.id, third.report_id, "reject", "abusive")
    assert resolution.status is ReportStatus.action_taken
    assert resolution.content_status is S.rejected

    trail = engine.audit_trail(post_id, "post")
    assert [(e.actor, e.from_status, e.to_status) for e in trail] == [
        (SYSTEM_ACTOR, S.pending, S.flagged),
        (people.mod.id, S.flagged, S.rejected),
    ]

    # 25 verification bonus, -3 net votes, -10 for the upheld report
    snap = engine.get_reputation(people.alice.id)
    assert (snap.score, snap.tier) == (12, "newcomer")

    assert [e.recipient_id for e in events.of_type(MENTION_CREATED)] == [people.bob.id]
    assert [e.payload["to_status"] for e in events.of_type(STATUS_CHANGED)] == [
        "flagged",
        "rejected",
    ]
    assert [e.recipient_id for e in events.of_type(REPORT_RESOLVED)] == [people.dave.id]

    queue = engine.query_moderation_queue(status_filter=["pending", "reviewed"])
    assert len(queue.items) == 2
