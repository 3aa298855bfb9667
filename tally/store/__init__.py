"""Persistence port: relational schema and transactional store."""

from tally.store.store import Store, UnitOfWork, new_id

__all__ = ["Store", "UnitOfWork", "new_id"]
