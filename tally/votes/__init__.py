"""Per-user votes and the content counters derived from them."""

from tally.votes.ledger import VoteLedger

__all__ = ["VoteLedger"]
