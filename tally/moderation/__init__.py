"""Moderation: the content status lifecycle and report handling."""

from tally.moderation.reports import DECISIONS, ReportIntake, decode_page_token, encode_page_token
from tally.moderation.state_machine import (
    SYSTEM_ACTOR,
    TRANSITIONS,
    ModerationStateMachine,
    can_transition,
    crosses_threshold,
)

__all__ = [
    "DECISIONS",
    "ModerationStateMachine",
    "ReportIntake",
    "SYSTEM_ACTOR",
    "TRANSITIONS",
    "can_transition",
    "crosses_threshold",
    "decode_page_token",
    "encode_page_token",
]
