"""Votes router -- cast, change or retract a vote."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from tally.engine import Tally
from tally.models import User
from web.backend.app.middleware.auth import get_current_user, get_engine
from web.backend.app.models.api import CastVoteRequest, VoteResponse

router = APIRouter(prefix="/api", tags=["votes"])


@router.put(
    "/content/{content_type}/{content_id}/vote",
    response_model=VoteResponse,
    summary="Cast a vote",
)
def cast_vote(
    content_type: str,
    content_id: str,
    body: CastVoteRequest,
    user: User = Depends(get_current_user),
    engine: Tally = Depends(get_engine),
):
    """Set the caller's vote; repeating the same vote is a no-op."""
    result = engine.cast_vote(user.id, content_id, content_type, body.vote_type)
    return VoteResponse(
        net_score=result.net_score,
        upvotes=result.upvotes,
        downvotes=result.downvotes,
        changed=result.changed,
    )
