"""FastAPI application for the Tally community scoring and moderation API.

Provides REST API endpoints wrapping the Tally engine for:
- Content submission, ranking and removal
- Voting
- Reporting, the moderation queue and report resolution
- Users, bans and reputation
"""

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tally import __version__
from tally.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    StoreUnavailable,
    TallyError,
    Unauthorized,
    ValidationError,
)
from tally.log import configure_logging
from web.backend.app.routers import content, reports, users, votes

configure_logging()

app = FastAPI(
    title="Tally API",
    description=(
        "REST API for the Tally engine. "
        "Provides endpoints for content, votes, reports, moderation and reputation."
    ),
    version=__version__,
)

# ---------------------------------------------------------------------------
# CORS middleware (allow all origins for development)
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Engine errors
# ---------------------------------------------------------------------------

_STATUS_CODES: list[tuple[type[TallyError], int]] = [
    (ValidationError, 422),
    (Unauthorized, status.HTTP_401_UNAUTHORIZED),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (StoreUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_for(exc: TallyError) -> int:
    for cls, code in _STATUS_CODES:
        if isinstance(exc, cls):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@app.exception_handler(TallyError)
async def tally_error_handler(request: Request, exc: TallyError):
    return JSONResponse(
        status_code=status_for(exc),
        content={"detail": exc.message, "code": exc.code},
    )


# ---------------------------------------------------------------------------
# Include routers
# ---------------------------------------------------------------------------
app.include_router(content.router)
app.include_router(votes.router)
app.include_router(reports.router)
app.include_router(users.router)


# ---------------------------------------------------------------------------
# Root and health-check endpoints
# ---------------------------------------------------------------------------


@app.get("/", tags=["meta"])
async def root():
    """Return basic API information."""
    return {
        "name": "Tally API",
        "version": __version__,
        "description": "Community scoring and moderation REST API",
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


@app.get("/health", tags=["meta"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
