"""SQLAlchemy-backed persistence port.

A :class:`Store` is constructed once per process and handed to every
component.  All reads and writes go through :meth:`Store.transaction`, which
yields a :class:`UnitOfWork` bound to a single database transaction; the
unit either commits as a whole or not at all.
"""

from __future__ import annotations

import logging
import threading
import uuid
from contextlib import contextmanager, nullcontext
from datetime import datetime, timezone
from typing import Iterable, Iterator, Optional

from sqlalchemy import and_, case, create_engine, delete, event, func, select, update
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tally.errors import ConflictError, StoreUnavailable
from tally.models import (
    OPEN_REPORT_STATUSES,
    AuditEntry,
    ContentType,
    ContentUnit,
    Mention,
    ModerationStatus,
    Report,
    ReportReason,
    ReportStatus,
    User,
    Vote,
    VoteType,
    utcnow,
)
from tally.store.schema import (
    AuditRow,
    Base,
    ContentRow,
    MentionDeliveryRow,
    MentionRow,
    ReportRow,
    UserRow,
    VoteRow,
)

logger = logging.getLogger(__name__)

_OPEN = [s.value for s in OPEN_REPORT_STATUSES]


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is stored as UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def new_id() -> str:
    return str(uuid.uuid4())


def _make_engine(url: str, echo: bool = False) -> Engine:
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return create_engine(url, echo=echo, pool_pre_ping=True)

    kwargs: dict = {"connect_args": {"check_same_thread": False, "timeout": 30}}
    if parsed.database in (None, "", ":memory:"):
        # One shared connection, otherwise every checkout gets an empty DB.
        kwargs["poolclass"] = StaticPool
    engine = create_engine(url, echo=echo, **kwargs)

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _record):
        # Let SQLAlchemy emit BEGIN itself; pysqlite would defer it.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        # Take the write lock up front so writers queue instead of deadlocking.
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


class Store:
    """Owns the engine and hands out transactional units of work."""

    def __init__(self, url: str = "sqlite://", *, echo: bool = False) -> None:
        self.url = url
        self._engine = _make_engine(url, echo=echo)
        self._sessions = sessionmaker(self._engine, expire_on_commit=False)
        # A StaticPool hands every thread the same connection, so units of
        # work must take turns on it.
        self._serial = (
            threading.RLock() if isinstance(self._engine.pool, StaticPool) else nullcontext()
        )

    @property
    def engine(self) -> Engine:
        return self._engine

    def create_schema(self) -> None:
        Base.metadata.create_all(self._engine)

    def dispose(self) -> None:
        self._engine.dispose()

    @contextmanager
    def transaction(self) -> Iterator["UnitOfWork"]:
        """Run a block inside one database transaction.

        Unique-constraint races surface as ``ConflictError`` so callers can
        retry; connectivity failures surface as ``StoreUnavailable``.
        """
        with self._serial:
            session = self._sessions()
            try:
                with session.begin():
                    yield UnitOfWork(session)
            except IntegrityError as exc:
                raise ConflictError(f"Concurrent write rejected by the store: {exc.orig}") from exc
            except (OperationalError, InterfaceError) as exc:
                logger.error("Store unavailable: %s", exc.orig)
                raise StoreUnavailable(str(exc.orig)) from exc
            finally:
                session.close()


class UnitOfWork:
    """Repository operations bound to one open transaction."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Row conversion
    # ------------------------------------------------------------------

    @staticmethod
    def _user(row: UserRow) -> User:
        return User(
            id=row.id,
            handle=row.handle,
            reputation=row.reputation,
            is_verified=row.is_verified,
            is_moderator=row.is_moderator,
            is_banned=row.is_banned,
            ban_reason=row.ban_reason,
            upheld_reports=row.upheld_reports,
            last_active_at=_aware(row.last_active_at),
            created_at=_aware(row.created_at),
        )

    @staticmethod
    def _content(row: ContentRow) -> ContentUnit:
        return ContentUnit(
            id=row.id,
            content_type=ContentType(row.content_type),
            author_id=row.author_id,
            body=row.body,
            tags=list(row.tags or []),
            upvotes=row.upvotes,
            downvotes=row.downvotes,
            moderation_status=ModerationStatus(row.moderation_status),
            version=row.version,
            created_at=_aware(row.created_at),
            updated_at=_aware(row.updated_at),
        )

    @staticmethod
    def _vote(row: VoteRow) -> Vote:
        return Vote(
            user_id=row.user_id,
            content_id=row.content_id,
            content_type=ContentType(row.content_type),
            vote_type=VoteType(row.vote_type),
            created_at=_aware(row.created_at),
            updated_at=_aware(row.updated_at),
        )

    @staticmethod
    def _report(row: ReportRow) -> Report:
        return Report(
            id=row.id,
            reporter_id=row.reporter_id,
            content_id=row.content_id,
            content_type=ContentType(row.content_type),
            reason=ReportReason(row.reason),
            status=ReportStatus(row.status),
            context=row.context,
            reviewed_by=row.reviewed_by,
            reviewed_at=_aware(row.reviewed_at),
            created_at=_aware(row.created_at),
            updated_at=_aware(row.updated_at),
        )

    @staticmethod
    def _mention(row: MentionRow) -> Mention:
        return Mention(
            id=str(row.id),
            content_id=row.content_id,
            content_type=ContentType(row.content_type),
            handle=row.handle,
            created_at=_aware(row.created_at),
        )

    @staticmethod
    def _audit(row: AuditRow) -> AuditEntry:
        return AuditEntry(
            id=str(row.id),
            content_id=row.content_id,
            content_type=ContentType(row.content_type),
            actor=row.actor,
            from_status=ModerationStatus(row.from_status),
            to_status=ModerationStatus(row.to_status),
            reason=row.reason,
            created_at=_aware(row.created_at),
        )

    def _fresh(self, stmt):
        return self._session.execute(stmt.execution_options(populate_existing=True))

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def add_user(self, user: User) -> User:
        now = utcnow()
        row = UserRow(
            id=user.id,
            handle=user.handle.lower(),
            reputation=user.reputation,
            is_verified=user.is_verified,
            is_moderator=user.is_moderator,
            is_banned=user.is_banned,
            ban_reason=user.ban_reason,
            upheld_reports=user.upheld_reports,
            last_active_at=user.last_active_at or now,
            created_at=user.created_at or now,
        )
        self._session.add(row)
        self._session.flush()
        return self._user(row)

    def get_user(self, user_id: str) -> Optional[User]:
        row = self._fresh(select(UserRow).where(UserRow.id == user_id)).scalar_one_or_none()
        return self._user(row) if row else None

    def get_user_by_handle(self, handle: str) -> Optional[User]:
        row = self._fresh(
            select(UserRow).where(UserRow.handle == handle.lower())
        ).scalar_one_or_none()
        return self._user(row) if row else None

    def users_by_handles(self, handles: Iterable[str]) -> dict[str, User]:
        wanted = [h.lower() for h in handles]
        if not wanted:
            return {}
        rows = self._fresh(select(UserRow).where(UserRow.handle.in_(wanted))).scalars()
        return {row.handle: self._user(row) for row in rows}

    def update_user(self, user_id: str, **values) -> None:
        values["updated_at"] = utcnow()
        self._session.execute(
            update(UserRow)
            .where(UserRow.id == user_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

    def record_upheld_report(self, author_id: str) -> None:
        self._session.execute(
            update(UserRow)
            .where(UserRow.id == author_id)
            .values(upheld_reports=UserRow.upheld_reports + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )

    def delete_user(self, user_id: str) -> None:
        self._session.execute(
            delete(UserRow)
            .where(UserRow.id == user_id)
            .execution_options(synchronize_session=False)
        )

    def all_user_ids(self) -> list[str]:
        return list(self._session.execute(select(UserRow.id)).scalars())

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def add_content(self, content: ContentUnit) -> ContentUnit:
        now = utcnow()
        row = ContentRow(
            id=content.id,
            content_type=content.content_type.value,
            author_id=content.author_id,
            body=content.body,
            tags=list(content.tags),
            upvotes=0,
            downvotes=0,
            moderation_status=content.moderation_status.value,
            version=0,
            created_at=now,
            updated_at=now,
        )
        self._session.add(row)
        self._session.flush()
        return self._content(row)

    def get_content(
        self, content_id: str, content_type: ContentType, *, lock: bool = False
    ) -> Optional[ContentUnit]:
        stmt = select(ContentRow).where(
            ContentRow.id == content_id, ContentRow.content_type == content_type.value
        )
        if lock:
            stmt = stmt.with_for_update()
        row = self._fresh(stmt).scalar_one_or_none()
        return self._content(row) if row else None

    def apply_counter_delta(
        self,
        content_id: str,
        content_type: ContentType,
        expected_version: int,
        up_delta: int,
        down_delta: int,
    ) -> bool:
        """Shift both counters by a relative delta if the version still matches."""
        result = self._session.execute(
            update(ContentRow)
            .where(
                ContentRow.id == content_id,
                ContentRow.content_type == content_type.value,
                ContentRow.version == expected_version,
            )
            .values(
                upvotes=ContentRow.upvotes + up_delta,
                downvotes=ContentRow.downvotes + down_delta,
                version=ContentRow.version + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def set_status(
        self,
        content_id: str,
        content_type: ContentType,
        expected_version: int,
        status: ModerationStatus,
    ) -> bool:
        result = self._session.execute(
            update(ContentRow)
            .where(
                ContentRow.id == content_id,
                ContentRow.content_type == content_type.value,
                ContentRow.version == expected_version,
            )
            .values(
                moderation_status=status.value,
                version=ContentRow.version + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def recount_votes(self, content_id: str, content_type: ContentType) -> None:
        """Re-aggregate both counters from the ledger in one statement."""
        ups = (
            select(func.count())
            .where(
                VoteRow.content_id == content_id,
                VoteRow.content_type == content_type.value,
                VoteRow.vote_type == VoteType.upvote.value,
            )
            .scalar_subquery()
        )
        downs = (
            select(func.count())
            .where(
                VoteRow.content_id == content_id,
                VoteRow.content_type == content_type.value,
                VoteRow.vote_type == VoteType.downvote.value,
            )
            .scalar_subquery()
        )
        self._session.execute(
            update(ContentRow)
            .where(ContentRow.id == content_id, ContentRow.content_type == content_type.value)
            .values(upvotes=ups, downvotes=downs, version=ContentRow.version + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )

    def delete_content(self, content_id: str, content_type: ContentType) -> None:
        self._session.execute(
            delete(ContentRow)
            .where(ContentRow.id == content_id, ContentRow.content_type == content_type.value)
            .execution_options(synchronize_session=False)
        )

    def content_by_author(self, author_id: str) -> list[ContentUnit]:
        rows = self._fresh(select(ContentRow).where(ContentRow.author_id == author_id)).scalars()
        return [self._content(r) for r in rows]

    def top_content(
        self,
        content_type: Optional[ContentType] = None,
        statuses: Optional[Iterable[ModerationStatus]] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[ContentUnit]:
        net = ContentRow.upvotes - ContentRow.downvotes
        stmt = select(ContentRow)
        if content_type is not None:
            stmt = stmt.where(ContentRow.content_type == content_type.value)
        if statuses is not None:
            stmt = stmt.where(ContentRow.moderation_status.in_([s.value for s in statuses]))
        stmt = stmt.order_by(net.desc(), ContentRow.created_at.desc()).offset(offset).limit(limit)
        return [self._content(r) for r in self._fresh(stmt).scalars()]

    # ------------------------------------------------------------------
    # Votes
    # ------------------------------------------------------------------

    def get_vote(self, user_id: str, content_id: str, content_type: ContentType) -> Optional[Vote]:
        row = self._fresh(
            select(VoteRow).where(
                VoteRow.user_id == user_id,
                VoteRow.content_id == content_id,
                VoteRow.content_type == content_type.value,
            )
        ).scalar_one_or_none()
        return self._vote(row) if row else None

    def upsert_vote(self, vote: Vote) -> None:
        now = utcnow()
        result = self._session.execute(
            update(VoteRow)
            .where(
                VoteRow.user_id == vote.user_id,
                VoteRow.content_id == vote.content_id,
                VoteRow.content_type == vote.content_type.value,
            )
            .values(vote_type=vote.vote_type.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self._session.add(
                VoteRow(
                    user_id=vote.user_id,
                    content_id=vote.content_id,
                    content_type=vote.content_type.value,
                    vote_type=vote.vote_type.value,
                    created_at=now,
                    updated_at=now,
                )
            )
            self._session.flush()

    def votes_by_user(self, user_id: str) -> list[Vote]:
        rows = self._fresh(select(VoteRow).where(VoteRow.user_id == user_id)).scalars()
        return [self._vote(r) for r in rows]

    def delete_votes_by_user(self, user_id: str) -> None:
        self._session.execute(
            delete(VoteRow)
            .where(VoteRow.user_id == user_id)
            .execution_options(synchronize_session=False)
        )

    def delete_votes_for_content(self, content_id: str, content_type: ContentType) -> None:
        self._session.execute(
            delete(VoteRow)
            .where(VoteRow.content_id == content_id, VoteRow.content_type == content_type.value)
            .execution_options(synchronize_session=False)
        )

    def received_vote_totals(self, author_id: str) -> list[tuple[str, int, int]]:
        """Return ``(content_id, upvotes, downvotes)`` per authored content unit.

        Counts come from the ledger, excluding the author's own votes.
        """
        up = func.sum(case((VoteRow.vote_type == VoteType.upvote.value, 1), else_=0))
        down = func.sum(case((VoteRow.vote_type == VoteType.downvote.value, 1), else_=0))
        stmt = (
            select(ContentRow.id, func.coalesce(up, 0), func.coalesce(down, 0))
            .select_from(ContentRow)
            .outerjoin(
                VoteRow,
                and_(
                    VoteRow.content_id == ContentRow.id,
                    VoteRow.content_type == ContentRow.content_type,
                    VoteRow.user_id != author_id,
                ),
            )
            .where(ContentRow.author_id == author_id)
            .group_by(ContentRow.id)
        )
        return [(cid, int(u), int(d)) for cid, u, d in self._session.execute(stmt)]

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def add_report(self, report: Report) -> Report:
        now = utcnow()
        row = ReportRow(
            id=report.id,
            reporter_id=report.reporter_id,
            content_id=report.content_id,
            content_type=report.content_type.value,
            reason=report.reason.value,
            context=report.context,
            status=report.status.value,
            created_at=now,
            updated_at=now,
        )
        self._session.add(row)
        self._session.flush()
        return self._report(row)

    def get_report(self, report_id: str) -> Optional[Report]:
        row = self._fresh(select(ReportRow).where(ReportRow.id == report_id)).scalar_one_or_none()
        return self._report(row) if row else None

    def update_report(self, report_id: str, **values) -> None:
        values["updated_at"] = utcnow()
        self._session.execute(
            update(ReportRow)
            .where(ReportRow.id == report_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

    def open_report_by(
        self, reporter_id: str, content_id: str, content_type: ContentType
    ) -> Optional[Report]:
        row = self._fresh(
            select(ReportRow)
            .where(
                ReportRow.reporter_id == reporter_id,
                ReportRow.content_id == content_id,
                ReportRow.content_type == content_type.value,
                ReportRow.status.in_(_OPEN),
            )
            .order_by(ReportRow.seq.desc())
            .limit(1)
        ).scalar_one_or_none()
        return self._report(row) if row else None

    def count_open_reports(self, content_id: str, content_type: ContentType) -> int:
        return self._session.execute(
            select(func.count()).where(
                ReportRow.content_id == content_id,
                ReportRow.content_type == content_type.value,
                ReportRow.status.in_(_OPEN),
            )
        ).scalar_one()

    def open_reporters(self, content_id: str, content_type: ContentType) -> set[str]:
        rows = self._session.execute(
            select(ReportRow.reporter_id).where(
                ReportRow.content_id == content_id,
                ReportRow.content_type == content_type.value,
                ReportRow.status.in_(_OPEN),
            )
        ).scalars()
        return set(rows)

    def count_reports_since(self, reporter_id: str, since: datetime) -> int:
        return self._session.execute(
            select(func.count()).where(
                ReportRow.reporter_id == reporter_id, ReportRow.created_at >= since
            )
        ).scalar_one()

    def reports_by_reporter(self, reporter_id: str) -> list[Report]:
        rows = self._fresh(
            select(ReportRow).where(ReportRow.reporter_id == reporter_id).order_by(ReportRow.seq)
        ).scalars()
        return [self._report(r) for r in rows]

    def list_reports(
        self,
        statuses: Optional[Iterable[ReportStatus]] = None,
        *,
        before_seq: Optional[int] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> list[tuple[int, Report]]:
        """Return ``(seq, report)`` pairs, newest first."""
        stmt = select(ReportRow)
        if statuses is not None:
            stmt = stmt.where(ReportRow.status.in_([s.value for s in statuses]))
        if before_seq is not None:
            stmt = stmt.where(ReportRow.seq < before_seq)
        stmt = stmt.order_by(ReportRow.seq.desc()).offset(offset).limit(limit)
        return [(r.seq, self._report(r)) for r in self._fresh(stmt).scalars()]

    def report_counts(self) -> tuple[dict[str, int], dict[str, int]]:
        """Return report counts grouped by status and by reason."""
        by_status = dict(
            self._session.execute(
                select(ReportRow.status, func.count()).group_by(ReportRow.status)
            ).all()
        )
        by_reason = dict(
            self._session.execute(
                select(ReportRow.reason, func.count()).group_by(ReportRow.reason)
            ).all()
        )
        return by_status, by_reason

    def content_over_threshold(self, threshold: int) -> list[tuple[str, str, int]]:
        stmt = (
            select(ReportRow.content_id, ReportRow.content_type, func.count())
            .where(ReportRow.status.in_(_OPEN))
            .group_by(ReportRow.content_id, ReportRow.content_type)
            .having(func.count() >= threshold)
            .order_by(func.count().desc())
        )
        return [(cid, ctype, int(n)) for cid, ctype, n in self._session.execute(stmt)]

    def delete_reports_for_content(self, content_id: str, content_type: ContentType) -> None:
        self._session.execute(
            delete(ReportRow)
            .where(ReportRow.content_id == content_id, ReportRow.content_type == content_type.value)
            .execution_options(synchronize_session=False)
        )

    # ------------------------------------------------------------------
    # Mentions
    # ------------------------------------------------------------------

    def add_mentions(
        self, content_id: str, content_type: ContentType, handles: Iterable[str]
    ) -> list[Mention]:
        now = utcnow()
        rows = [
            MentionRow(
                content_id=content_id,
                content_type=content_type.value,
                handle=handle,
                created_at=now,
            )
            for handle in handles
        ]
        self._session.add_all(rows)
        self._session.flush()
        return [self._mention(r) for r in rows]

    def mentions_for_content(self, content_id: str, content_type: ContentType) -> list[Mention]:
        rows = self._fresh(
            select(MentionRow)
            .where(MentionRow.content_id == content_id, MentionRow.content_type == content_type.value)
            .order_by(MentionRow.id)
        ).scalars()
        return [self._mention(r) for r in rows]

    def undelivered_mentions(self, handle: str) -> list[Mention]:
        delivered = select(MentionDeliveryRow.mention_id)
        rows = self._fresh(
            select(MentionRow)
            .where(MentionRow.handle == handle.lower(), MentionRow.id.not_in(delivered))
            .order_by(MentionRow.id)
        ).scalars()
        return [self._mention(r) for r in rows]

    def record_delivery(self, mention_id: str, user_id: str) -> None:
        self._session.add(
            MentionDeliveryRow(mention_id=int(mention_id), user_id=user_id, delivered_at=utcnow())
        )
        self._session.flush()

    def delete_mentions_for_content(self, content_id: str, content_type: ContentType) -> None:
        self._session.execute(
            delete(MentionRow)
            .where(MentionRow.content_id == content_id, MentionRow.content_type == content_type.value)
            .execution_options(synchronize_session=False)
        )

    # ------------------------------------------------------------------
    # Moderation audit
    # ------------------------------------------------------------------

    def append_audit(self, entry: AuditEntry) -> AuditEntry:
        row = AuditRow(
            content_id=entry.content_id,
            content_type=entry.content_type.value,
            actor=entry.actor,
            from_status=entry.from_status.value,
            to_status=entry.to_status.value,
            reason=entry.reason,
            created_at=entry.created_at or utcnow(),
        )
        self._session.add(row)
        self._session.flush()
        return self._audit(row)

    def audit_for(self, content_id: str, content_type: ContentType) -> list[AuditEntry]:
        rows = self._fresh(
            select(AuditRow)
            .where(AuditRow.content_id == content_id, AuditRow.content_type == content_type.value)
            .order_by(AuditRow.id)
        ).scalars()
        return [self._audit(r) for r in rows]
