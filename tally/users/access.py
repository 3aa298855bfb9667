"""Caller checks shared by every mutating operation.

The checks run inside the operation's own transaction, before any write,
so a rejected caller never leaves partial state behind.
"""

from __future__ import annotations

from typing import Optional

from tally.errors import ForbiddenError, Unauthorized
from tally.log import security_logger
from tally.models import User
from tally.store import UnitOfWork


def require_caller(tx: UnitOfWork, user_id: Optional[str]) -> User:
    """Resolve *user_id* to a known user or raise ``Unauthorized``."""
    if not user_id:
        raise Unauthorized("Caller identity is required")
    user = tx.get_user(user_id)
    if user is None:
        raise Unauthorized(f"Unknown caller {user_id}")
    return user


def require_active(tx: UnitOfWork, user_id: Optional[str]) -> User:
    """Like :func:`require_caller`, additionally refusing banned users."""
    user = require_caller(tx, user_id)
    if user.is_banned:
        security_logger.warning("Banned user %s attempted a mutation", user.id)
        raise ForbiddenError("Banned users cannot perform this action")
    return user


def require_moderator(tx: UnitOfWork, user_id: Optional[str], action: str = "moderate") -> User:
    """Resolve an active moderator or raise ``ForbiddenError``."""
    user = require_active(tx, user_id)
    if not user.is_moderator:
        security_logger.warning("Non-moderator %s attempted to %s", user.id, action)
        raise ForbiddenError(f"Only moderators may {action}")
    return user
