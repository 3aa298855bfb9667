"""Relational schema for the Tally store.

One polymorphic ``content_units`` table keyed by ``content_type``; votes
keyed by the (user, content, type) unique constraint; reports with their
review fields; append-only mentions and moderation audit tables.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from tally.models import utcnow

CONTENT_TYPES = "('post', 'review', 'comment')"
MODERATION_STATUSES = "('pending', 'approved', 'rejected', 'flagged', 'under_review')"


class Base(DeclarativeBase):
    pass


class UserRow(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    # Stored lower-cased; uniqueness is case-insensitive.
    handle: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    reputation: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_moderator: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_banned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ban_reason: Mapped[Optional[str]] = mapped_column(Text)
    # Upheld reports against this user's content; survives content deletion.
    upheld_reports: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_active_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("reputation >= 0", name="ck_users_reputation"),
        CheckConstraint("upheld_reports >= 0", name="ck_users_upheld_reports"),
        Index("ix_users_reputation", "reputation"),
    )


class ContentRow(Base):
    __tablename__ = "content_units"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    content_type: Mapped[str] = mapped_column(String(20), nullable=False)
    author_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    body: Mapped[str] = mapped_column(Text, nullable=False)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    upvotes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    downvotes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    moderation_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    # Bumped on every aggregate or status write; guards compare-and-swap.
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        CheckConstraint(f"content_type IN {CONTENT_TYPES}", name="ck_content_type"),
        CheckConstraint(f"moderation_status IN {MODERATION_STATUSES}", name="ck_content_status"),
        CheckConstraint("upvotes >= 0", name="ck_content_upvotes"),
        CheckConstraint("downvotes >= 0", name="ck_content_downvotes"),
        CheckConstraint("length(body) > 0", name="ck_content_body"),
        Index("ix_content_author", "author_id"),
        Index("ix_content_type_status", "content_type", "moderation_status"),
    )


class VoteRow(Base):
    __tablename__ = "votes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    content_id: Mapped[str] = mapped_column(String(36), nullable=False)
    content_type: Mapped[str] = mapped_column(String(20), nullable=False)
    vote_type: Mapped[str] = mapped_column(String(10), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "content_id", "content_type", name="uq_votes_user_content"),
        CheckConstraint("vote_type IN ('upvote', 'downvote', 'none')", name="ck_vote_type"),
        Index("ix_votes_content", "content_id", "content_type"),
    )


class ReportRow(Base):
    __tablename__ = "reports"

    # Insertion order; drives newest-first paging.
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    # Nulled when the reporter's account is deleted; the report stays on record.
    reporter_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL")
    )
    content_id: Mapped[str] = mapped_column(String(36), nullable=False)
    content_type: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[str] = mapped_column(String(50), nullable=False)
    context: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    reviewed_by: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL")
    )
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'reviewed', 'action_taken', 'dismissed')",
            name="ck_report_status",
        ),
        CheckConstraint(
            "reason IN ('Harassment', 'Spam', 'Personal Information', 'Inappropriate Content', "
            "'Misinformation', 'Violence or Threats', 'Hate Speech', 'Other')",
            name="ck_report_reason",
        ),
        CheckConstraint(
            "reviewed_by IS NULL OR reviewed_by != reporter_id", name="ck_report_self_review"
        ),
        Index("ix_reports_content", "content_id", "content_type", "status"),
        Index("ix_reports_reporter", "reporter_id", "created_at"),
        Index("ix_reports_status", "status"),
    )


class MentionRow(Base):
    __tablename__ = "mentions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    content_id: Mapped[str] = mapped_column(String(36), nullable=False)
    content_type: Mapped[str] = mapped_column(String(20), nullable=False)
    handle: Mapped[str] = mapped_column(String(30), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("content_id", "content_type", "handle", name="uq_mentions_content_handle"),
        Index("ix_mentions_handle", "handle"),
    )


class MentionDeliveryRow(Base):
    __tablename__ = "mention_deliveries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    mention_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("mentions.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    delivered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("mention_id", "user_id", name="uq_mention_delivery"),
    )


class AuditRow(Base):
    """Append-only; rows outlive the content they describe."""

    __tablename__ = "moderation_audit"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    content_id: Mapped[str] = mapped_column(String(36), nullable=False)
    content_type: Mapped[str] = mapped_column(String(20), nullable=False)
    actor: Mapped[str] = mapped_column(String(36), nullable=False)
    from_status: Mapped[str] = mapped_column(String(20), nullable=False)
    to_status: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (Index("ix_audit_content", "content_id", "content_type"),)
