"""Error types raised by the Tally engine.

Every error carries a short human-readable message.  The HTTP layer maps
each class to a status code; see ``web.backend.app.main``.
"""

from __future__ import annotations


class TallyError(Exception):
    """Base class for all engine errors."""

    code = "error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class ValidationError(TallyError):
    """Malformed input: bad length, unknown enum value, malformed handle."""

    code = "validation_error"


class InvalidTransition(ValidationError):
    """A moderation status change that the lifecycle does not allow."""

    code = "invalid_transition"


class Unauthorized(TallyError):
    """Missing or unknown caller identity."""

    code = "unauthorized"


class ForbiddenError(TallyError):
    """The caller is identified but may not perform this mutation."""

    code = "forbidden"


class NotFoundError(TallyError):
    """A referenced user, content unit or report does not exist."""

    code = "not_found"


class ConflictError(TallyError):
    """Concurrent modification of a shared aggregate was detected."""

    code = "conflict"


class StoreUnavailable(TallyError):
    """The backing store could not complete the request."""

    code = "store_unavailable"
