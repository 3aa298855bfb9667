"""Domain models shared by every Tally component."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, TypeVar

from tally.errors import ValidationError

E = TypeVar("E", bound=Enum)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_enum(enum_cls: type[E], value: object, field_name: str) -> E:
    """Coerce *value* into *enum_cls* or raise ``ValidationError``.

    String-backed fields are only accepted at the boundary through this
    helper, so an unknown value never reaches the store.
    """
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(repr(m.value) for m in enum_cls)
        raise ValidationError(
            f"Unknown {field_name} {value!r}; expected one of {allowed}"
        ) from None


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class ContentType(str, Enum):
    """Content unit variants."""

    post = "post"
    review = "review"
    comment = "comment"

    @property
    def max_length(self) -> int:
        """Upper bound on body length for this variant."""
        return {
            ContentType.post: 10000,
            ContentType.review: 5000,
            ContentType.comment: 2000,
        }[self]


class ModerationStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    flagged = "flagged"
    under_review = "under_review"


class VoteType(str, Enum):
    """A ledger entry value.  ``none`` is a retraction, not a deletion."""

    upvote = "upvote"
    downvote = "downvote"
    none = "none"

    @property
    def counters(self) -> tuple[int, int]:
        """Return the (upvotes, downvotes) contribution of this vote."""
        return {
            VoteType.upvote: (1, 0),
            VoteType.downvote: (0, 1),
            VoteType.none: (0, 0),
        }[self]


class Priority(str, Enum):
    critical = "critical"
    high = "high"
    medium = "medium"
    low = "low"

    @property
    def sort_order(self) -> int:
        return {
            Priority.critical: 0,
            Priority.high: 1,
            Priority.medium: 2,
            Priority.low: 3,
        }[self]


class ReportReason(str, Enum):
    """Closed catalog of report reasons."""

    harassment = "Harassment"
    spam = "Spam"
    personal_information = "Personal Information"
    inappropriate_content = "Inappropriate Content"
    misinformation = "Misinformation"
    violence = "Violence or Threats"
    hate_speech = "Hate Speech"
    other = "Other"

    @property
    def priority(self) -> Priority:
        if self in (ReportReason.harassment, ReportReason.hate_speech, ReportReason.violence):
            return Priority.critical
        if self is ReportReason.personal_information:
            return Priority.high
        if self in (ReportReason.inappropriate_content, ReportReason.misinformation):
            return Priority.medium
        return Priority.low


class ReportStatus(str, Enum):
    pending = "pending"
    reviewed = "reviewed"
    action_taken = "action_taken"
    dismissed = "dismissed"

    @property
    def is_open(self) -> bool:
        return self in OPEN_REPORT_STATUSES


OPEN_REPORT_STATUSES = frozenset({ReportStatus.pending, ReportStatus.reviewed})


class ReportDecision(str, Enum):
    """Moderator decisions on a report."""

    reject = "reject"  # content rejected, report action_taken
    approve = "approve"  # content approved, report dismissed
    dismiss = "dismiss"  # report dismissed, content untouched
    escalate = "escalate"  # content under_review, report reviewed


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


@dataclass
class User:
    """A platform member as seen by the engine."""

    id: str
    handle: str
    reputation: int = 0
    is_verified: bool = False
    is_moderator: bool = False
    is_banned: bool = False
    ban_reason: Optional[str] = None
    upheld_reports: int = 0
    last_active_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


@dataclass
class ContentUnit:
    """A post, review or comment."""

    id: str
    content_type: ContentType
    author_id: str
    body: str
    tags: list[str] = field(default_factory=list)
    upvotes: int = 0
    downvotes: int = 0
    moderation_status: ModerationStatus = ModerationStatus.pending
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def net_score(self) -> int:
        return self.upvotes - self.downvotes


@dataclass
class Vote:
    user_id: str
    content_id: str
    content_type: ContentType
    vote_type: VoteType
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Report:
    id: str
    reporter_id: Optional[str]
    content_id: str
    content_type: ContentType
    reason: ReportReason
    status: ReportStatus = ReportStatus.pending
    context: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def priority(self) -> Priority:
        return self.reason.priority


@dataclass
class Mention:
    id: str
    content_id: str
    content_type: ContentType
    handle: str
    created_at: Optional[datetime] = None


@dataclass
class AuditEntry:
    """One immutable moderation status change."""

    id: str
    content_id: str
    content_type: ContentType
    actor: str
    from_status: ModerationStatus
    to_status: ModerationStatus
    reason: str = ""
    created_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Operation results
# ---------------------------------------------------------------------------


@dataclass
class SubmitResult:
    id: str
    created_at: datetime
    mentions: list[str] = field(default_factory=list)


@dataclass
class VoteResult:
    net_score: int
    upvotes: int
    downvotes: int
    changed: bool


@dataclass
class ReportReceipt:
    report_id: str
    status: ReportStatus
    created: bool
    content_status: ModerationStatus


@dataclass
class Resolution:
    report_id: str
    status: ReportStatus
    content_status: ModerationStatus


@dataclass
class ReportPage:
    """A page of the moderation queue, newest first."""

    items: list[Report] = field(default_factory=list)
    page: int = 1
    page_size: int = 20
    next_page_token: Optional[str] = None


@dataclass
class ReputationSnapshot:
    user_id: str
    score: int
    tier: str
