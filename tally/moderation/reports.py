"""Report intake, resolution and the moderation queue."""

from __future__ import annotations

import base64
import binascii
import json
import logging
from datetime import datetime, time, timezone
from typing import Iterable, Optional

from tally.concurrency import KeyedLocks, retry_on_conflict
from tally.config import EngineConfig
from tally.errors import ForbiddenError, NotFoundError, ValidationError
from tally.events import REPORT_RESOLVED, Event, EventBus
from tally.log import security_logger
from tally.models import (
    AuditEntry,
    ContentType,
    ModerationStatus,
    Priority,
    Report,
    ReportDecision,
    ReportPage,
    ReportReason,
    ReportReceipt,
    ReportStatus,
    Resolution,
    parse_enum,
    utcnow,
)
from tally.moderation.state_machine import ModerationStateMachine, can_transition
from tally.reputation import ReputationEngine
from tally.store import Store, new_id
from tally.users.access import require_active, require_moderator

logger = logging.getLogger(__name__)

MAX_CONTEXT_LENGTH = 1000
DEFAULT_PAGE_SIZE = 20

# decision -> (report status, content status or None)
DECISIONS: dict[ReportDecision, tuple[ReportStatus, Optional[ModerationStatus]]] = {
    ReportDecision.reject: (ReportStatus.action_taken, ModerationStatus.rejected),
    ReportDecision.approve: (ReportStatus.dismissed, ModerationStatus.approved),
    ReportDecision.dismiss: (ReportStatus.dismissed, None),
    ReportDecision.escalate: (ReportStatus.reviewed, ModerationStatus.under_review),
}


# ---------------------------------------------------------------------------
# Page tokens
# ---------------------------------------------------------------------------


def encode_page_token(seq: int) -> str:
    raw = json.dumps({"before": seq}, separators=(",", ":")).encode()
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def decode_page_token(token: str) -> int:
    try:
        padded = token + "=" * (-len(token) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded.encode()))
        seq = data["before"]
    except (binascii.Error, UnicodeDecodeError, ValueError, TypeError, KeyError):
        raise ValidationError("Malformed page token") from None
    if not isinstance(seq, int) or seq < 1:
        raise ValidationError("Malformed page token")
    return seq


def _validate_report(
    reason: ReportReason | str, context: Optional[str]
) -> tuple[ReportReason, Optional[str]]:
    parsed = parse_enum(ReportReason, reason, "report reason")
    if context is not None:
        context = context.strip() or None
    if context is not None and len(context) > MAX_CONTEXT_LENGTH:
        raise ValidationError(f"Report context is limited to {MAX_CONTEXT_LENGTH} characters")
    return parsed, context


def _status_filter(
    status_filter: ReportStatus | str | Iterable[ReportStatus | str] | None,
) -> Optional[list[ReportStatus]]:
    if status_filter is None:
        return None
    if isinstance(status_filter, (str, ReportStatus)):
        status_filter = [status_filter]
    return [parse_enum(ReportStatus, s, "report status") for s in status_filter]


# ---------------------------------------------------------------------------
# Intake
# ---------------------------------------------------------------------------


class ReportIntake:
    def __init__(
        self,
        store: Store,
        bus: EventBus,
        config: EngineConfig,
        locks: KeyedLocks,
        state_machine: ModerationStateMachine,
        reputation: ReputationEngine,
    ) -> None:
        self._store = store
        self._bus = bus
        self._config = config
        self._locks = locks
        self._state_machine = state_machine
        self._reputation = reputation

    def submit_report(
        self,
        reporter_id: str,
        content_id: str,
        content_type: ContentType | str,
        reason: ReportReason | str,
        context: Optional[str] = None,
    ) -> ReportReceipt:
        """File a report, or refresh the reporter's open report on the same content.

        A new report may push the content over the flagging threshold.
        """
        content_type = parse_enum(ContentType, content_type, "content type")

        def attempt() -> tuple[ReportReceipt, Optional[AuditEntry], str, ReportReason]:
            with self._store.transaction() as tx:
                reporter = require_active(tx, reporter_id)
                parsed_reason, cleaned = _validate_report(reason, context)
                content = tx.get_content(content_id, content_type, lock=True)
                if content is None:
                    raise NotFoundError(f"{content_type.value.capitalize()} {content_id} not found")

                existing = tx.open_report_by(reporter.id, content_id, content_type)
                if existing is not None:
                    if cleaned is not None:
                        tx.update_report(existing.id, context=cleaned)
                    receipt = ReportReceipt(
                        existing.id, existing.status, False, content.moderation_status
                    )
                    return receipt, None, content.author_id, parsed_reason

                limit = self._config.daily_report_limit
                if limit:
                    day_start = datetime.combine(utcnow().date(), time.min, tzinfo=timezone.utc)
                    if tx.count_reports_since(reporter.id, day_start) >= limit:
                        security_logger.warning(
                            "Reporter %s hit the daily limit of %d reports", reporter.id, limit
                        )
                        raise ForbiddenError(f"Daily report limit of {limit} reached")

                previous_open = tx.count_open_reports(content_id, content_type)
                report = tx.add_report(
                    Report(
                        id=new_id(),
                        reporter_id=reporter.id,
                        content_id=content_id,
                        content_type=content_type,
                        reason=parsed_reason,
                        context=cleaned,
                    )
                )
                entry = self._state_machine.evaluate_threshold(
                    tx, content, previous_open, previous_open + 1
                )
                receipt = ReportReceipt(report.id, report.status, True, content.moderation_status)
                return receipt, entry, content.author_id, parsed_reason

        with self._locks.hold((content_type, content_id)):
            receipt, entry, author_id, parsed = retry_on_conflict(
                attempt,
                self._config.max_conflict_retries,
                f"report on {content_type.value} {content_id}",
            )

        if receipt.created:
            logger.info(
                "Report %s filed on %s %s (%s)",
                receipt.report_id,
                content_type.value,
                content_id,
                parsed.value,
            )
        if entry is not None:
            self._state_machine.publish(entry, author_id)
        return receipt

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve_report(
        self,
        moderator_id: str,
        report_id: str,
        decision: ReportDecision | str,
        note: Optional[str] = None,
    ) -> Resolution:
        """Close or escalate a report and apply the matching content status."""
        decision = parse_enum(ReportDecision, decision, "decision")
        report_status, target = DECISIONS[decision]

        with self._store.transaction() as tx:
            report = tx.get_report(report_id)
        if report is None:
            raise NotFoundError(f"Report {report_id} not found")

        def attempt() -> tuple[Resolution, list[AuditEntry], Report, str]:
            with self._store.transaction() as tx:
                moderator = require_moderator(tx, moderator_id, "resolve reports")
                current = tx.get_report(report_id)
                if current is None:
                    raise NotFoundError(f"Report {report_id} not found")
                if not current.status.is_open:
                    raise ValidationError(
                        f"Report {report_id} is already {current.status.value}"
                    )
                content = tx.get_content(current.content_id, current.content_type, lock=True)
                if content is None:
                    raise NotFoundError(
                        f"{current.content_type.value.capitalize()} {current.content_id} not found"
                    )
                self._state_machine.check_impartial(tx, moderator.id, content)

                tx.update_report(
                    report_id,
                    status=report_status.value,
                    reviewed_by=moderator.id,
                    reviewed_at=utcnow(),
                )
                if report_status is ReportStatus.action_taken:
                    tx.record_upheld_report(content.author_id)

                entries: list[AuditEntry] = []
                if target is not None and target is not content.moderation_status:
                    reason = note or f"report {report_id}: {decision.value}"
                    reopen = ModerationStatus.under_review
                    if not can_transition(content.moderation_status, target) and can_transition(
                        content.moderation_status, reopen
                    ):
                        # approved/rejected content is reopened before it can move again
                        entries.append(
                            self._state_machine.apply(tx, content, reopen, moderator.id, reason)
                        )
                    entries.append(
                        self._state_machine.apply(tx, content, target, moderator.id, reason)
                    )
                resolution = Resolution(report_id, report_status, content.moderation_status)
                return resolution, entries, current, content.author_id

        with self._locks.hold((report.content_type, report.content_id)):
            resolution, entries, report, author_id = retry_on_conflict(
                attempt, self._config.max_conflict_retries, f"resolution of report {report_id}"
            )

        logger.info(
            "Report %s resolved by %s: %s -> %s",
            report_id,
            moderator_id,
            decision.value,
            resolution.status.value,
        )
        for entry in entries:
            self._state_machine.publish(entry, author_id)
        if report.reporter_id is not None:
            self._bus.emit(
                Event(
                    type=REPORT_RESOLVED,
                    recipient_id=report.reporter_id,
                    payload={
                        "report_id": report_id,
                        "decision": decision.value,
                        "status": resolution.status.value,
                        "content_id": report.content_id,
                        "content_type": report.content_type.value,
                        "content_status": resolution.content_status.value,
                    },
                )
            )
        self._reputation.schedule(author_id)
        return resolution

    # ------------------------------------------------------------------
    # Queue and statistics
    # ------------------------------------------------------------------

    def query_moderation_queue(
        self,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        status_filter: ReportStatus | str | Iterable[ReportStatus | str] | None = None,
        page_token: Optional[str] = None,
    ) -> ReportPage:
        """Return one page of reports, newest first.

        ``page_token`` (from a previous page) takes precedence over ``page``
        and keeps paging stable while new reports arrive.
        """
        page_size = max(1, min(int(page_size), self._config.queue_max_page_size))
        page = max(1, int(page))
        statuses = _status_filter(status_filter)

        with self._store.transaction() as tx:
            if page_token:
                rows = tx.list_reports(
                    statuses, before_seq=decode_page_token(page_token), limit=page_size + 1
                )
            else:
                rows = tx.list_reports(
                    statuses, offset=(page - 1) * page_size, limit=page_size + 1
                )

        has_more = len(rows) > page_size
        rows = rows[:page_size]
        return ReportPage(
            items=[report for _, report in rows],
            page=page,
            page_size=page_size,
            next_page_token=encode_page_token(rows[-1][0]) if has_more else None,
        )

    def get_report(self, report_id: str) -> Report:
        with self._store.transaction() as tx:
            report = tx.get_report(report_id)
        if report is None:
            raise NotFoundError(f"Report {report_id} not found")
        return report

    def report_stats(self) -> dict:
        """Counts by status and reason, plus content at or over the threshold."""
        with self._store.transaction() as tx:
            by_status, by_reason = tx.report_counts()
            hot = tx.content_over_threshold(self._config.report_threshold)
        return {
            "by_status": {s.value: by_status.get(s.value, 0) for s in ReportStatus},
            "by_reason": {r.value: by_reason.get(r.value, 0) for r in ReportReason},
            "by_priority": {
                p.value: sum(n for r, n in by_reason.items() if ReportReason(r).priority is p)
                for p in sorted(Priority, key=lambda p: p.sort_order)
            },
            "over_threshold": [
                {"content_id": cid, "content_type": ctype, "open_reports": n}
                for cid, ctype, n in hot
            ],
        }
