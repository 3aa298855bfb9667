"""Content router -- submission, retrieval, deletion and ranking."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from tally.engine import Tally
from tally.models import ContentUnit, User
from web.backend.app.middleware.auth import get_current_user, get_engine
from web.backend.app.models.api import (
    ContentResponse,
    SubmitContentRequest,
    SubmitContentResponse,
)

router = APIRouter(prefix="/api", tags=["content"])


def _content_response(c: ContentUnit) -> ContentResponse:
    """Convert a ContentUnit to a ContentResponse."""
    return ContentResponse(
        id=c.id,
        content_type=c.content_type.value,
        author_id=c.author_id,
        body=c.body,
        tags=c.tags,
        upvotes=c.upvotes,
        downvotes=c.downvotes,
        net_score=c.net_score,
        moderation_status=c.moderation_status.value,
        created_at=c.created_at,
        updated_at=c.updated_at,
    )


@router.post(
    "/content",
    response_model=SubmitContentResponse,
    summary="Submit a post, review or comment",
    status_code=status.HTTP_201_CREATED,
)
def submit_content(
    body: SubmitContentRequest,
    user: User = Depends(get_current_user),
    engine: Tally = Depends(get_engine),
):
    """Create a content unit in pending status and notify mentioned users."""
    result = engine.submit_content(user.id, body.body, body.content_type, body.tags)
    return SubmitContentResponse(id=result.id, created_at=result.created_at, mentions=result.mentions)


@router.get(
    "/content/top",
    response_model=list[ContentResponse],
    summary="Rank content by net score",
)
def top_content(
    content_type: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    status_filter: list[str] = Query(["approved"], alias="status"),
    engine: Tally = Depends(get_engine),
):
    """Return the highest scoring content, approved only unless ``status`` says otherwise."""
    return [_content_response(c) for c in engine.top_content(content_type, limit, status_filter)]


@router.get(
    "/content/{content_type}/{content_id}",
    response_model=ContentResponse,
    summary="Get a content unit",
)
def get_content(content_type: str, content_id: str, engine: Tally = Depends(get_engine)):
    return _content_response(engine.get_content(content_id, content_type))


@router.delete(
    "/content/{content_type}/{content_id}",
    summary="Delete your own content",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_content(
    content_type: str,
    content_id: str,
    user: User = Depends(get_current_user),
    engine: Tally = Depends(get_engine),
):
    engine.delete_content(user.id, content_id, content_type)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
