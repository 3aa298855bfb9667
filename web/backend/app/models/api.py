"""Pydantic models for API request/response serialization.

These models mirror the Tally dataclasses and provide JSON serialization
for the FastAPI endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class RegisterUserRequest(BaseModel):
    handle: str


class UserResponse(BaseModel):
    """Mirrors tally.models.User."""

    id: str
    handle: str
    reputation: int = 0
    is_verified: bool = False
    is_moderator: bool = False
    is_banned: bool = False
    created_at: Optional[datetime] = None


class BanUserRequest(BaseModel):
    reason: str = ""


class ReputationResponse(BaseModel):
    """Mirrors tally.models.ReputationSnapshot."""

    user_id: str
    score: int
    tier: str


# ---------------------------------------------------------------------------
# Content and votes
# ---------------------------------------------------------------------------


class SubmitContentRequest(BaseModel):
    body: str
    content_type: str = Field(description="post, review or comment")
    tags: list[str] = Field(default_factory=list)


class SubmitContentResponse(BaseModel):
    id: str
    created_at: datetime
    mentions: list[str] = Field(default_factory=list)


class ContentResponse(BaseModel):
    """Mirrors tally.models.ContentUnit."""

    id: str
    content_type: str
    author_id: str
    body: str
    tags: list[str] = Field(default_factory=list)
    upvotes: int = 0
    downvotes: int = 0
    net_score: int = 0
    moderation_status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CastVoteRequest(BaseModel):
    vote_type: str = Field(description="upvote, downvote or none")


class VoteResponse(BaseModel):
    net_score: int
    upvotes: int
    downvotes: int
    changed: bool


# ---------------------------------------------------------------------------
# Reports and moderation
# ---------------------------------------------------------------------------


class SubmitReportRequest(BaseModel):
    reason: str
    context: Optional[str] = None


class ReportReceiptResponse(BaseModel):
    report_id: str
    status: str
    created: bool
    content_status: str


class ResolveReportRequest(BaseModel):
    decision: str = Field(description="reject, approve, dismiss or escalate")
    note: Optional[str] = None


class ResolutionResponse(BaseModel):
    report_id: str
    status: str
    content_status: str


class ReportResponse(BaseModel):
    """Mirrors tally.models.Report."""

    id: str
    reporter_id: Optional[str] = None
    content_id: str
    content_type: str
    reason: str
    priority: str
    status: str
    context: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ReportPageResponse(BaseModel):
    items: list[ReportResponse] = Field(default_factory=list)
    page: int = 1
    page_size: int = 20
    next_page_token: Optional[str] = None


class TransitionRequest(BaseModel):
    to_status: str
    reason: str = ""


class AuditEntryResponse(BaseModel):
    """Mirrors tally.models.AuditEntry."""

    id: str
    content_id: str
    content_type: str
    actor: str
    from_status: str
    to_status: str
    reason: str = ""
    created_at: Optional[datetime] = None
