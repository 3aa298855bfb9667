"""Reputation scoring derived from votes, reports and verification."""

from tally.reputation.engine import ReputationEngine
from tally.reputation.tiers import TIER_BANDS, Tier, compute_score, tier_for

__all__ = ["ReputationEngine", "TIER_BANDS", "Tier", "compute_score", "tier_for"]
