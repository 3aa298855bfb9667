"""The ``Tally`` facade.

Wires one store, event bus and configuration into the components and
exposes the operations used by the HTTP API and the CLI::

    engine = Tally.from_config(load_config("tally.yaml"))
    engine.init_db()
    alice = engine.register_user("alice")
    post = engine.submit_content(alice.id, "Hello @bob", "post")
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from tally.concurrency import KeyedLocks
from tally.config import EngineConfig
from tally.content import ContentService
from tally.events import EventBus
from tally.mentions import MentionNotifier
from tally.models import (
    AuditEntry,
    ContentType,
    ContentUnit,
    Mention,
    ModerationStatus,
    Report,
    ReportDecision,
    ReportPage,
    ReportReason,
    ReportReceipt,
    ReportStatus,
    ReputationSnapshot,
    Resolution,
    SubmitResult,
    User,
    VoteResult,
    VoteType,
    parse_enum,
)
from tally.moderation import ModerationStateMachine, ReportIntake
from tally.reputation import ReputationEngine
from tally.store import Store
from tally.users.directory import UserDirectory
from tally.votes import VoteLedger

logger = logging.getLogger(__name__)


class Tally:
    """Community scoring and moderation engine."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        *,
        store: Optional[Store] = None,
        bus: Optional[EventBus] = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.store = store or Store(self.config.database_url)
        self.bus = bus or EventBus()
        self.locks = KeyedLocks()

        self.reputation = ReputationEngine(self.store, self.bus, self.config)
        self.mentions = MentionNotifier(self.store, self.bus, self.config)
        self.moderation = ModerationStateMachine(self.store, self.bus, self.config, self.locks)
        self.reports = ReportIntake(
            self.store, self.bus, self.config, self.locks, self.moderation, self.reputation
        )
        self.votes = VoteLedger(self.store, self.config, self.locks, self.reputation)
        self.content = ContentService(self.store, self.config, self.mentions, self.reputation)
        self.users = UserDirectory(self.store, self.mentions, self.reputation)

    @classmethod
    def from_config(cls, config: EngineConfig) -> "Tally":
        return cls(config)

    def init_db(self) -> None:
        self.store.create_schema()

    def close(self) -> None:
        self.store.dispose()

    def _settle(self) -> None:
        # Inline mode: drain whatever the finished operation scheduled.
        if self.reputation.inline:
            self.reputation.drain()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def register_user(
        self,
        handle: str,
        *,
        is_verified: bool = False,
        is_moderator: bool = False,
        user_id: Optional[str] = None,
    ) -> User:
        user = self.users.register_user(
            handle, is_verified=is_verified, is_moderator=is_moderator, user_id=user_id
        )
        self._settle()
        return self.users.get_user(user.id) if is_verified else user

    def get_user(self, user_id: str) -> User:
        return self.users.get_user(user_id)

    def set_verified(self, user_id: str, verified: bool = True) -> User:
        user = self.users.set_verified(user_id, verified)
        self._settle()
        return user

    def ban_user(self, moderator_id: str, user_id: str, reason: str = "") -> User:
        return self.users.ban_user(moderator_id, user_id, reason)

    def unban_user(self, moderator_id: str, user_id: str) -> User:
        return self.users.unban_user(moderator_id, user_id)

    def delete_user(self, actor_id: str, user_id: str) -> None:
        self.users.delete_user(actor_id, user_id)
        self._settle()

    # ------------------------------------------------------------------
    # Content and votes
    # ------------------------------------------------------------------

    def submit_content(
        self,
        author_id: str,
        body: str,
        variant: ContentType | str,
        tags: Optional[Iterable[str]] = None,
    ) -> SubmitResult:
        return self.content.submit_content(author_id, body, variant, tags)

    def get_content(self, content_id: str, content_type: ContentType | str) -> ContentUnit:
        return self.content.get_content(content_id, content_type)

    def delete_content(self, actor_id: str, content_id: str, content_type: ContentType | str) -> None:
        self.content.delete_content(actor_id, content_id, content_type)
        self._settle()

    def top_content(
        self,
        content_type: ContentType | str | None = None,
        limit: int = 20,
        statuses: Optional[Iterable[ModerationStatus | str]] = (ModerationStatus.approved,),
    ) -> list[ContentUnit]:
        return self.content.top_content(content_type, limit, statuses)

    def cast_vote(
        self,
        user_id: str,
        content_id: str,
        content_type: ContentType | str,
        vote_type: VoteType | str,
    ) -> VoteResult:
        result = self.votes.cast_vote(user_id, content_id, content_type, vote_type)
        self._settle()
        return result

    # ------------------------------------------------------------------
    # Reports and moderation
    # ------------------------------------------------------------------

    def submit_report(
        self,
        reporter_id: str,
        content_id: str,
        content_type: ContentType | str,
        reason: ReportReason | str,
        context: Optional[str] = None,
    ) -> ReportReceipt:
        return self.reports.submit_report(reporter_id, content_id, content_type, reason, context)

    def resolve_report(
        self,
        moderator_id: str,
        report_id: str,
        decision: ReportDecision | str,
        note: Optional[str] = None,
    ) -> Resolution:
        resolution = self.reports.resolve_report(moderator_id, report_id, decision, note)
        self._settle()
        return resolution

    def query_moderation_queue(
        self,
        page: int = 1,
        page_size: int = 20,
        status_filter: ReportStatus | str | Iterable[ReportStatus | str] | None = None,
        page_token: Optional[str] = None,
    ) -> ReportPage:
        return self.reports.query_moderation_queue(page, page_size, status_filter, page_token)

    def get_report(self, report_id: str) -> Report:
        return self.reports.get_report(report_id)

    def report_stats(self) -> dict:
        return self.reports.report_stats()

    def transition(
        self,
        moderator_id: str,
        content_id: str,
        content_type: ContentType | str,
        to_status: ModerationStatus | str,
        reason: str = "",
    ) -> AuditEntry:
        return self.moderation.transition(moderator_id, content_id, content_type, to_status, reason)

    def audit_trail(self, content_id: str, content_type: ContentType | str) -> list[AuditEntry]:
        return self.moderation.audit_trail(content_id, content_type)

    # ------------------------------------------------------------------
    # Reputation and mentions
    # ------------------------------------------------------------------

    def get_reputation(self, user_id: str) -> ReputationSnapshot:
        return self.reputation.get_reputation(user_id)

    def recompute_reputation(self, user_id: Optional[str] = None) -> list[ReputationSnapshot]:
        """Recompute one user now, or everyone when *user_id* is omitted."""
        if user_id is None:
            return self.reputation.recompute_all()
        return [self.reputation.recompute(user_id)]

    def drain_reputation(self) -> list[ReputationSnapshot]:
        return self.reputation.drain()

    def reconcile_mentions(self, handle: str) -> int:
        return self.mentions.reconcile(handle)

    def mentions_for(self, content_id: str, content_type: ContentType | str) -> list[Mention]:
        content_type = parse_enum(ContentType, content_type, "content type")
        with self.store.transaction() as tx:
            return tx.mentions_for_content(content_id, content_type)
