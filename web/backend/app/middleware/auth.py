"""Auth middleware -- FastAPI dependencies for the engine and the calling user.

The caller is identified by the ``X-User-Id`` header, set by the gateway
after it has authenticated the request.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from tally.engine import Tally
from tally.errors import NotFoundError
from tally.log import security_logger
from tally.models import User

# Shared engine instance
_engine: Optional[Tally] = None


def get_engine() -> Tally:
    """Return the process-wide engine, creating the schema on first use."""
    global _engine
    if _engine is None:
        from tally.config import load_config

        _engine = Tally(load_config())
        _engine.init_db()
    return _engine


def get_current_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    engine: Tally = Depends(get_engine),
) -> User:
    """FastAPI dependency resolving ``X-User-Id`` to a known user.

    Raises ``401 Unauthorized`` when the header is missing or unknown.
    """
    if x_user_id:
        try:
            return engine.get_user(x_user_id)
        except NotFoundError:
            pass

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
    )


def get_moderator(user: User = Depends(get_current_user)) -> User:
    """Same as ``get_current_user`` but requires moderator rights (403)."""
    if not user.is_moderator or user.is_banned:
        security_logger.warning("User %s denied moderator endpoint", user.id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Moderator rights required",
        )
    return user
