"""Reputation recomputation.

Components call :meth:`ReputationEngine.schedule` after a triggering write
commits; nothing waits on the recompute.  Pending user ids are drained
either right after the operation (``inline`` mode) or by an explicit batch
call to :meth:`ReputationEngine.drain` (``deferred`` mode).
"""

from __future__ import annotations

import logging
import threading

from tally.config import EngineConfig
from tally.errors import NotFoundError, TallyError
from tally.events import TIER_CHANGED, Event, EventBus
from tally.models import ReputationSnapshot
from tally.reputation.tiers import compute_score, tier_for
from tally.store import Store

logger = logging.getLogger(__name__)


class ReputationEngine:
    def __init__(self, store: Store, bus: EventBus, config: EngineConfig) -> None:
        self._store = store
        self._bus = bus
        self._config = config
        self._pending: set[str] = set()
        self._lock = threading.Lock()

    @property
    def inline(self) -> bool:
        return self._config.reputation_mode == "inline"

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def schedule(self, user_id: str) -> None:
        with self._lock:
            self._pending.add(user_id)

    def pending(self) -> set[str]:
        with self._lock:
            return set(self._pending)

    def drain(self) -> list[ReputationSnapshot]:
        """Recompute every pending user.

        A user whose recompute fails stays pending for the next drain;
        users that no longer exist are dropped.
        """
        with self._lock:
            batch, self._pending = self._pending, set()

        snapshots = []
        for user_id in sorted(batch):
            try:
                snapshots.append(self.recompute(user_id))
            except NotFoundError:
                logger.debug("Dropping recompute for deleted user %s", user_id)
            except TallyError:
                logger.exception("Reputation recompute failed for %s; left pending", user_id)
                self.schedule(user_id)
        return snapshots

    # ------------------------------------------------------------------
    # Computation
    # ------------------------------------------------------------------

    def recompute(self, user_id: str) -> ReputationSnapshot:
        """Recompute and store *user_id*'s reputation from scratch."""
        with self._store.transaction() as tx:
            user = tx.get_user(user_id)
            if user is None:
                raise NotFoundError(f"User {user_id} not found")
            totals = tx.received_vote_totals(user_id)
            penalties = user.upheld_reports
            score = compute_score(
                [(up, down) for _, up, down in totals],
                penalties,
                user.is_verified,
                vote_cap=self._config.per_content_vote_cap,
                report_penalty=self._config.report_penalty,
                verification_bonus=self._config.verification_bonus,
            )
            if score != user.reputation:
                tx.update_user(user_id, reputation=score)

        old_tier, new_tier = tier_for(user.reputation), tier_for(score)
        logger.debug("Reputation of %s: %d -> %d", user_id, user.reputation, score)
        if old_tier is not new_tier:
            logger.info("User %s moved from %s to %s", user_id, old_tier.value, new_tier.value)
            self._bus.emit(
                Event(
                    type=TIER_CHANGED,
                    recipient_id=user_id,
                    payload={
                        "user_id": user_id,
                        "old_tier": old_tier.value,
                        "new_tier": new_tier.value,
                        "score": score,
                    },
                )
            )
        return ReputationSnapshot(user_id=user_id, score=score, tier=new_tier.value)

    def recompute_all(self) -> list[ReputationSnapshot]:
        with self._store.transaction() as tx:
            user_ids = tx.all_user_ids()
        for user_id in user_ids:
            self.schedule(user_id)
        return self.drain()

    def get_reputation(self, user_id: str) -> ReputationSnapshot:
        """Return the stored score and tier without recomputing."""
        with self._store.transaction() as tx:
            user = tx.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return ReputationSnapshot(
            user_id=user.id, score=user.reputation, tier=tier_for(user.reputation).value
        )
