"""Reputation tiers and the score formula."""

from __future__ import annotations

from enum import Enum
from typing import Iterable


class Tier(str, Enum):
    newcomer = "newcomer"
    contributor = "contributor"
    trusted = "trusted"
    expert = "expert"
    legend = "legend"


# Lower bound of each tier, ascending.
TIER_BANDS: tuple[tuple[int, Tier], ...] = (
    (0, Tier.newcomer),
    (100, Tier.contributor),
    (500, Tier.trusted),
    (1000, Tier.expert),
    (2500, Tier.legend),
)


def tier_for(score: int) -> Tier:
    """Map a non-negative score onto its tier band."""
    current = Tier.newcomer
    for floor, tier in TIER_BANDS:
        if score < floor:
            break
        current = tier
    return current


def compute_score(
    vote_totals: Iterable[tuple[int, int]],
    action_taken_reports: int,
    is_verified: bool,
    *,
    vote_cap: int,
    report_penalty: int,
    verification_bonus: int,
) -> int:
    """Derive a reputation score from the full signal set.

    ``vote_totals`` holds ``(upvotes, downvotes)`` received from other users
    per authored content unit; each unit's net contribution is clamped to
    ``[-vote_cap, vote_cap]``.  The result is floored at zero.
    """
    score = 0
    for upvotes, downvotes in vote_totals:
        score += max(-vote_cap, min(vote_cap, upvotes - downvotes))
    score -= report_penalty * action_taken_reports
    if is_verified:
        score += verification_bonus
    return max(0, score)
