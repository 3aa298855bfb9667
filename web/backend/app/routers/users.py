"""Users & reputation router -- registration, bans, account removal and scores."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from tally.engine import Tally
from tally.models import User
from web.backend.app.middleware.auth import get_current_user, get_engine
from web.backend.app.models.api import (
    BanUserRequest,
    RegisterUserRequest,
    ReputationResponse,
    UserResponse,
)

router = APIRouter(prefix="/api", tags=["users"])


def _user_response(u: User) -> UserResponse:
    return UserResponse(
        id=u.id,
        handle=u.handle,
        reputation=u.reputation,
        is_verified=u.is_verified,
        is_moderator=u.is_moderator,
        is_banned=u.is_banned,
        created_at=u.created_at,
    )


@router.post(
    "/users",
    response_model=UserResponse,
    summary="Register a user",
    status_code=status.HTTP_201_CREATED,
)
def register_user(body: RegisterUserRequest, engine: Tally = Depends(get_engine)):
    return _user_response(engine.register_user(body.handle))


@router.get("/users/{user_id}", response_model=UserResponse, summary="Get a user")
def get_user(user_id: str, engine: Tally = Depends(get_engine)):
    return _user_response(engine.get_user(user_id))


@router.get(
    "/users/{user_id}/reputation",
    response_model=ReputationResponse,
    summary="Get a user's reputation",
)
def get_reputation(user_id: str, engine: Tally = Depends(get_engine)):
    """Return the stored score and tier."""
    snap = engine.get_reputation(user_id)
    return ReputationResponse(user_id=snap.user_id, score=snap.score, tier=snap.tier)


@router.post("/users/{user_id}/ban", response_model=UserResponse, summary="Ban a user")
def ban_user(
    user_id: str,
    body: BanUserRequest,
    user: User = Depends(get_current_user),
    engine: Tally = Depends(get_engine),
):
    return _user_response(engine.ban_user(user.id, user_id, body.reason))


@router.post("/users/{user_id}/unban", response_model=UserResponse, summary="Lift a ban")
def unban_user(
    user_id: str,
    user: User = Depends(get_current_user),
    engine: Tally = Depends(get_engine),
):
    return _user_response(engine.unban_user(user.id, user_id))


@router.delete(
    "/users/{user_id}",
    summary="Delete an account and everything it owns",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_user(
    user_id: str,
    user: User = Depends(get_current_user),
    engine: Tally = Depends(get_engine),
):
    engine.delete_user(user.id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
