"""Tests for the user directory, content removal and account deletion."""

import pytest

from tally.errors import ForbiddenError, NotFoundError, Unauthorized, ValidationError
from tally.models import ContentType


# --- Registration Tests ---


def test_register_normalizes_handle(engine):
    user = engine.register_user("@Zoe_99")
    assert user.handle == "zoe_99"
    assert engine.get_user(user.id).handle == "zoe_99"


def test_handles_are_unique_case_insensitively(engine, people):
    with pytest.raises(ValidationError):
        engine.register_user("ALICE")


def test_malformed_handle(engine):
    with pytest.raises(ValidationError):
        engine.register_user("no spaces allowed")
    with pytest.raises(ValidationError):
        engine.register_user("x" * 31)


def test_registered_verified_user_starts_with_bonus(engine):
    user = engine.register_user("checked", is_verified=True)
    assert user.reputation == 25


# --- Content Tests ---


def test_submit_content_validation(engine, people):
    with pytest.raises(ValidationError):
        engine.submit_content(people.alice.id, "   ", "post")
    with pytest.raises(ValidationError):
        engine.submit_content(people.alice.id, "x" * 2001, "comment")
    with pytest.raises(ValidationError):
        engine.submit_content(people.alice.id, "fine", "essay")
    with pytest.raises(ValidationError):
        engine.submit_content(people.alice.id, "fine", "post", [f"t{i}" for i in range(11)])
    with pytest.raises(Unauthorized):
        engine.submit_content(None, "fine", "post")


def test_unknown_author_is_rejected_before_body_checks(engine):
    with pytest.raises(Unauthorized):
        engine.submit_content(None, "   ", "post")
    with pytest.raises(Unauthorized):
        engine.submit_content("ghost", "x" * 20000, "essay")


def test_submit_content_normalizes_tags(engine, people):
    result = engine.submit_content(people.alice.id, "tagged", "review", [" Food ", "food", "NYC"])
    content = engine.get_content(result.id, "review")
    assert content.tags == ["food", "nyc"]
    assert content.moderation_status.value == "pending"
    assert content.content_type is ContentType.review


def test_only_author_deletes_content(engine, people, post):
    engine.cast_vote(people.bob.id, post.id, "post", "upvote")
    engine.submit_report(people.carol.id, post.id, "post", "Spam")
    with pytest.raises(ForbiddenError):
        engine.delete_content(people.bob.id, post.id, "post")

    engine.delete_content(people.alice.id, post.id, "post")

    with pytest.raises(NotFoundError):
        engine.get_content(post.id, "post")
    assert engine.query_moderation_queue().items == []
    assert engine.get_reputation(people.alice.id).score == 0


# --- Ban Tests ---


def test_ban_blocks_mutations_until_lifted(engine, people, post):
    with pytest.raises(ForbiddenError):
        engine.ban_user(people.bob.id, people.carol.id)

    banned = engine.ban_user(people.mod.id, people.carol.id, "brigading")
    assert banned.is_banned and banned.ban_reason == "brigading"
    with pytest.raises(ForbiddenError):
        engine.submit_content(people.carol.id, "still here", "post")
    with pytest.raises(ForbiddenError):
        engine.submit_report(people.carol.id, post.id, "post", "Spam")

    engine.unban_user(people.mod.id, people.carol.id)
    engine.submit_report(people.carol.id, post.id, "post", "Spam")


def test_moderator_cannot_ban_self(engine, people):
    with pytest.raises(ForbiddenError):
        engine.ban_user(people.mod.id, people.mod.id)


# --- Account deletion Tests ---


def test_delete_user_cascades_and_reaggregates(engine, people, post):
    bob_post = engine.submit_content(people.bob.id, "bob's thoughts", "post").id
    engine.cast_vote(people.bob.id, post.id, "post", "upvote")
    engine.cast_vote(people.carol.id, post.id, "post", "upvote")
    engine.cast_vote(people.alice.id, bob_post, "post", "upvote")
    engine.transition(people.mod.id, bob_post, "post", "approved")
    assert engine.get_reputation(people.alice.id).score == 2

    engine.delete_user(people.bob.id, people.bob.id)

    with pytest.raises(NotFoundError):
        engine.get_user(people.bob.id)
    with pytest.raises(NotFoundError):
        engine.get_content(bob_post, "post")
    content = engine.get_content(post.id, "post")
    assert (content.upvotes, content.downvotes) == (1, 0)
    assert engine.get_reputation(people.alice.id).score == 1
    # Audit entries outlive the content they describe.
    assert len(engine.audit_trail(bob_post, "post")) == 1


def test_delete_other_user_requires_moderator(engine, people):
    with pytest.raises(ForbiddenError):
        engine.delete_user(people.bob.id, people.carol.id)
    engine.delete_user(people.mod.id, people.carol.id)
    with pytest.raises(NotFoundError):
        engine.get_user(people.carol.id)
