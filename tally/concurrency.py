"""Serialization helpers for mutations on a shared content aggregate."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Hashable, Iterator, TypeVar

from tally.errors import ConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class KeyedLocks:
    """One re-entrant lock per key, created on demand and dropped when idle.

    Used to serialize vote, report and status writes on the same content
    unit inside this process; writes to different units never contend.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, list] = {}  # key -> [lock, holders]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.RLock(), 0])
            entry[1] += 1
        lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


def retry_on_conflict(operation: Callable[[], T], retries: int, what: str = "operation") -> T:
    """Run *operation*, re-running it on ``ConflictError`` up to *retries* times.

    Each attempt must read its base state afresh; the last conflict is
    re-raised to the caller.
    """
    attempt = 0
    while True:
        try:
            return operation()
        except ConflictError:
            if attempt >= retries:
                logger.warning("%s still conflicting after %d retries", what, retries)
                raise
            attempt += 1
            logger.debug("%s conflicted, retry %d/%d", what, attempt, retries)
