"""Moderation lifecycle of a content unit.

Allowed manual transitions::

    pending       -> approved, rejected, flagged, under_review
    flagged       -> under_review, approved, rejected
    under_review  -> approved, rejected
    approved      -> under_review
    rejected      -> under_review

The only automatic transition is ``pending``/``approved`` -> ``flagged``,
taken once when the open-report count reaches the configured threshold.
Every transition writes one audit entry and notifies the author.
"""

from __future__ import annotations

import logging
from typing import Optional

from tally.concurrency import KeyedLocks, retry_on_conflict
from tally.config import EngineConfig
from tally.errors import ConflictError, ForbiddenError, InvalidTransition, NotFoundError
from tally.events import STATUS_CHANGED, Event, EventBus
from tally.log import security_logger
from tally.models import AuditEntry, ContentType, ContentUnit, ModerationStatus, parse_enum
from tally.store import Store, UnitOfWork
from tally.users.access import require_moderator

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"

_S = ModerationStatus

TRANSITIONS: dict[ModerationStatus, frozenset[ModerationStatus]] = {
    _S.pending: frozenset({_S.approved, _S.rejected, _S.flagged, _S.under_review}),
    _S.flagged: frozenset({_S.under_review, _S.approved, _S.rejected}),
    _S.under_review: frozenset({_S.approved, _S.rejected}),
    _S.approved: frozenset({_S.under_review}),
    _S.rejected: frozenset({_S.under_review}),
}

AUTO_FLAG_FROM = frozenset({_S.pending, _S.approved})


def can_transition(from_status: ModerationStatus, to_status: ModerationStatus) -> bool:
    return to_status in TRANSITIONS.get(from_status, frozenset())


def crosses_threshold(previous: int, current: int, threshold: int) -> bool:
    """True only for the report that brings the open count up to *threshold*."""
    return previous < threshold <= current


class ModerationStateMachine:
    def __init__(
        self, store: Store, bus: EventBus, config: EngineConfig, locks: KeyedLocks
    ) -> None:
        self._store = store
        self._bus = bus
        self._config = config
        self._locks = locks

    # ------------------------------------------------------------------
    # In-transaction primitives (callers hold the content lock)
    # ------------------------------------------------------------------

    def apply(
        self,
        tx: UnitOfWork,
        content: ContentUnit,
        to_status: ModerationStatus,
        actor: str,
        reason: str = "",
        *,
        automatic: bool = False,
    ) -> AuditEntry:
        """Move *content* to *to_status* inside *tx* and append the audit entry.

        The caller must publish the returned entry after the transaction
        commits.
        """
        from_status = content.moderation_status
        allowed = (
            to_status is _S.flagged and from_status in AUTO_FLAG_FROM
            if automatic
            else can_transition(from_status, to_status)
        )
        if not allowed:
            raise InvalidTransition(
                f"Cannot move {content.content_type.value} {content.id} "
                f"from {from_status.value} to {to_status.value}"
            )
        if not tx.set_status(content.id, content.content_type, content.version, to_status):
            raise ConflictError(
                f"{content.content_type.value.capitalize()} {content.id} changed concurrently"
            )
        content.moderation_status = to_status
        content.version += 1
        return tx.append_audit(
            AuditEntry(
                id="",
                content_id=content.id,
                content_type=content.content_type,
                actor=actor,
                from_status=from_status,
                to_status=to_status,
                reason=reason,
            )
        )

    def evaluate_threshold(
        self, tx: UnitOfWork, content: ContentUnit, previous_open: int, current_open: int
    ) -> Optional[AuditEntry]:
        """Flag *content* if this report crossed the threshold."""
        if not crosses_threshold(previous_open, current_open, self._config.report_threshold):
            return None
        if content.moderation_status not in AUTO_FLAG_FROM:
            return None
        return self.apply(
            tx,
            content,
            _S.flagged,
            SYSTEM_ACTOR,
            f"{current_open} open reports reached threshold {self._config.report_threshold}",
            automatic=True,
        )

    def publish(self, entry: AuditEntry, author_id: str) -> None:
        logger.info(
            "%s %s: %s -> %s by %s",
            entry.content_type.value,
            entry.content_id,
            entry.from_status.value,
            entry.to_status.value,
            entry.actor,
        )
        self._bus.emit(
            Event(
                type=STATUS_CHANGED,
                recipient_id=author_id,
                payload={
                    "content_id": entry.content_id,
                    "content_type": entry.content_type.value,
                    "from_status": entry.from_status.value,
                    "to_status": entry.to_status.value,
                    "actor": entry.actor,
                    "reason": entry.reason,
                },
            )
        )

    # ------------------------------------------------------------------
    # Manual transitions
    # ------------------------------------------------------------------

    def transition(
        self,
        moderator_id: str,
        content_id: str,
        content_type: ContentType | str,
        to_status: ModerationStatus | str,
        reason: str = "",
    ) -> AuditEntry:
        """Apply a moderator's explicit status change."""
        content_type = parse_enum(ContentType, content_type, "content type")
        to_status = parse_enum(ModerationStatus, to_status, "moderation status")

        def attempt() -> tuple[AuditEntry, str]:
            with self._store.transaction() as tx:
                moderator = require_moderator(tx, moderator_id, "change moderation status")
                content = tx.get_content(content_id, content_type, lock=True)
                if content is None:
                    raise NotFoundError(f"{content_type.value.capitalize()} {content_id} not found")
                self.check_impartial(tx, moderator.id, content)
                entry = self.apply(tx, content, to_status, moderator.id, reason)
                return entry, content.author_id

        with self._locks.hold((content_type, content_id)):
            entry, author_id = retry_on_conflict(
                attempt,
                self._config.max_conflict_retries,
                f"transition of {content_type.value} {content_id}",
            )
        self.publish(entry, author_id)
        return entry

    def check_impartial(self, tx: UnitOfWork, moderator_id: str, content: ContentUnit) -> None:
        """Refuse moderators who authored or have an open report on *content*."""
        if content.author_id == moderator_id:
            security_logger.warning(
                "Moderator %s attempted to moderate own %s %s",
                moderator_id,
                content.content_type.value,
                content.id,
            )
            raise ForbiddenError("Moderators cannot moderate their own content")
        if moderator_id in tx.open_reporters(content.id, content.content_type):
            security_logger.warning(
                "Moderator %s attempted to moderate %s %s they reported",
                moderator_id,
                content.content_type.value,
                content.id,
            )
            raise ForbiddenError("Moderators cannot moderate content they reported")

    def audit_trail(self, content_id: str, content_type: ContentType | str) -> list[AuditEntry]:
        """Return every recorded transition for the content unit, oldest first."""
        content_type = parse_enum(ContentType, content_type, "content type")
        with self._store.transaction() as tx:
            return tx.audit_for(content_id, content_type)
