"""Vote ledger.

Each (user, content unit) pair has exactly one ledger row.  Casting a vote
upserts that row and shifts the content's counters by the difference
between the old and new vote in the same transaction, so the counters
always equal the ledger totals.
"""

from __future__ import annotations

import logging

from tally.concurrency import KeyedLocks, retry_on_conflict
from tally.config import EngineConfig
from tally.errors import ConflictError, NotFoundError
from tally.models import ContentType, Vote, VoteResult, VoteType, parse_enum, utcnow
from tally.reputation import ReputationEngine
from tally.store import Store
from tally.users.access import require_active

logger = logging.getLogger(__name__)


class VoteLedger:
    def __init__(
        self,
        store: Store,
        config: EngineConfig,
        locks: KeyedLocks,
        reputation: ReputationEngine,
    ) -> None:
        self._store = store
        self._config = config
        self._locks = locks
        self._reputation = reputation

    def cast_vote(
        self,
        user_id: str,
        content_id: str,
        content_type: ContentType | str,
        vote_type: VoteType | str,
    ) -> VoteResult:
        """Record *user_id*'s vote and return the content's new tally.

        Repeating the current vote changes nothing; ``none`` retracts an
        earlier vote.
        """
        content_type = parse_enum(ContentType, content_type, "content type")
        vote_type = parse_enum(VoteType, vote_type, "vote type")

        with self._locks.hold((content_type, content_id)):
            result, author_id = retry_on_conflict(
                lambda: self._apply(user_id, content_id, content_type, vote_type),
                self._config.max_conflict_retries,
                f"vote on {content_type.value} {content_id}",
            )

        if result.changed:
            self._reputation.schedule(author_id)
        return result

    def _apply(
        self,
        user_id: str,
        content_id: str,
        content_type: ContentType,
        vote_type: VoteType,
    ) -> tuple[VoteResult, str]:
        with self._store.transaction() as tx:
            voter = require_active(tx, user_id)
            content = tx.get_content(content_id, content_type, lock=True)
            if content is None:
                raise NotFoundError(f"{content_type.value.capitalize()} {content_id} not found")

            previous = tx.get_vote(voter.id, content_id, content_type)
            old_type = previous.vote_type if previous else VoteType.none
            if previous is not None and old_type is vote_type:
                return (
                    VoteResult(content.net_score, content.upvotes, content.downvotes, changed=False),
                    content.author_id,
                )

            old_up, old_down = old_type.counters
            new_up, new_down = vote_type.counters
            up_delta, down_delta = new_up - old_up, new_down - old_down

            tx.upsert_vote(Vote(voter.id, content_id, content_type, vote_type))
            if up_delta or down_delta:
                if not tx.apply_counter_delta(
                    content_id, content_type, content.version, up_delta, down_delta
                ):
                    raise ConflictError(
                        f"{content_type.value.capitalize()} {content_id} changed concurrently"
                    )
            tx.update_user(voter.id, last_active_at=utcnow())

        upvotes, downvotes = content.upvotes + up_delta, content.downvotes + down_delta
        changed = bool(up_delta or down_delta)
        if changed:
            logger.debug(
                "%s %s on %s %s: %s -> %s",
                voter.id,
                "changed vote" if previous else "voted",
                content_type.value,
                content_id,
                old_type.value,
                vote_type.value,
            )
        return VoteResult(upvotes - downvotes, upvotes, downvotes, changed), content.author_id
