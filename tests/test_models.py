"""Tests for domain models and engine configuration."""

import tempfile
from pathlib import Path

import pytest
import yaml

from tally.config import EngineConfig, config_from_mapping, load_config
from tally.errors import ValidationError
from tally.models import (
    ContentType,
    ContentUnit,
    Priority,
    ReportReason,
    ReportStatus,
    VoteType,
    parse_enum,
)


# --- Enum Tests ---


def test_parse_enum_accepts_values_and_members():
    assert parse_enum(VoteType, "upvote", "vote type") is VoteType.upvote
    assert parse_enum(VoteType, VoteType.none, "vote type") is VoteType.none


def test_parse_enum_rejects_unknown_value():
    with pytest.raises(ValidationError) as exc:
        parse_enum(VoteType, "sideways", "vote type")
    assert "sideways" in exc.value.message


def test_vote_counters():
    assert VoteType.upvote.counters == (1, 0)
    assert VoteType.downvote.counters == (0, 1)
    assert VoteType.none.counters == (0, 0)


def test_content_type_limits():
    assert ContentType.post.max_length == 10000
    assert ContentType.review.max_length == 5000
    assert ContentType.comment.max_length == 2000


def test_report_reason_catalog_and_priority():
    assert ReportReason("Spam") is ReportReason.spam
    assert ReportReason.harassment.priority is Priority.critical
    assert ReportReason.personal_information.priority is Priority.high
    assert ReportReason.misinformation.priority is Priority.medium
    assert ReportReason.other.priority is Priority.low
    assert Priority.critical.sort_order < Priority.low.sort_order


def test_report_status_open():
    assert ReportStatus.pending.is_open
    assert ReportStatus.reviewed.is_open
    assert not ReportStatus.action_taken.is_open
    assert not ReportStatus.dismissed.is_open


def test_net_score():
    unit = ContentUnit(id="c1", content_type=ContentType.post, author_id="u1", body="x",
                       upvotes=4, downvotes=7)
    assert unit.net_score == -3


# --- Config Tests ---


def test_config_defaults():
    config = EngineConfig()
    assert config.report_threshold == 3
    assert config.per_content_vote_cap == 100
    assert config.report_penalty == 10
    assert config.verification_bonus == 25
    assert config.reputation_mode == "inline"
    assert config.max_conflict_retries == 5


def test_load_config_yaml_and_env_override():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "tally.yaml"
        path.write_text(yaml.dump({"report_threshold": 4, "reputation_mode": "deferred"}))

        config = load_config(path, environ={"TALLY_REPORT_THRESHOLD": "6"})

    assert config.report_threshold == 6
    assert config.reputation_mode == "deferred"


def test_load_config_without_file_uses_env_only():
    config = load_config(environ={"TALLY_DATABASE_URL": "sqlite://"})
    assert config.database_url == "sqlite://"
    assert config.report_threshold == 3


def test_config_rejects_unknown_keys():
    with pytest.raises(ValidationError):
        config_from_mapping({"report_treshold": 3})


def test_config_rejects_bad_values():
    with pytest.raises(ValidationError):
        config_from_mapping({"report_threshold": "many"})
    with pytest.raises(ValidationError):
        EngineConfig(report_threshold=0)
    with pytest.raises(ValidationError):
        EngineConfig(reputation_mode="eventually")


def test_config_file_must_be_mapping():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "tally.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ValidationError):
            load_config(path, environ={})
