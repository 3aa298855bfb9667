"""Reports & moderation router -- reporting, the queue, resolutions and transitions."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from tally.engine import Tally
from tally.models import AuditEntry, Report, User
from web.backend.app.middleware.auth import get_current_user, get_engine, get_moderator
from web.backend.app.models.api import (
    AuditEntryResponse,
    ReportPageResponse,
    ReportReceiptResponse,
    ReportResponse,
    ResolutionResponse,
    ResolveReportRequest,
    SubmitReportRequest,
    TransitionRequest,
)

router = APIRouter(prefix="/api", tags=["moderation"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _report_response(r: Report) -> ReportResponse:
    return ReportResponse(
        id=r.id,
        reporter_id=r.reporter_id,
        content_id=r.content_id,
        content_type=r.content_type.value,
        reason=r.reason.value,
        priority=r.priority.value,
        status=r.status.value,
        context=r.context,
        reviewed_by=r.reviewed_by,
        reviewed_at=r.reviewed_at,
        created_at=r.created_at,
    )


def _audit_response(e: AuditEntry) -> AuditEntryResponse:
    return AuditEntryResponse(
        id=e.id,
        content_id=e.content_id,
        content_type=e.content_type.value,
        actor=e.actor,
        from_status=e.from_status.value,
        to_status=e.to_status.value,
        reason=e.reason,
        created_at=e.created_at,
    )


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


@router.post(
    "/content/{content_type}/{content_id}/reports",
    response_model=ReportReceiptResponse,
    summary="Report a content unit",
)
def submit_report(
    content_type: str,
    content_id: str,
    body: SubmitReportRequest,
    response: Response,
    user: User = Depends(get_current_user),
    engine: Tally = Depends(get_engine),
):
    """File a report; a repeat report by the same user updates the open one (200)."""
    receipt = engine.submit_report(user.id, content_id, content_type, body.reason, body.context)
    response.status_code = status.HTTP_201_CREATED if receipt.created else status.HTTP_200_OK
    return ReportReceiptResponse(
        report_id=receipt.report_id,
        status=receipt.status.value,
        created=receipt.created,
        content_status=receipt.content_status.value,
    )


# ---------------------------------------------------------------------------
# Moderation
# ---------------------------------------------------------------------------


@router.get(
    "/moderation/queue",
    response_model=ReportPageResponse,
    summary="List reports, newest first",
)
def moderation_queue(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1),
    status_filter: Optional[list[str]] = Query(None, alias="status"),
    page_token: Optional[str] = Query(None),
    _moderator: User = Depends(get_moderator),
    engine: Tally = Depends(get_engine),
):
    result = engine.query_moderation_queue(page, page_size, status_filter or None, page_token)
    return ReportPageResponse(
        items=[_report_response(r) for r in result.items],
        page=result.page,
        page_size=result.page_size,
        next_page_token=result.next_page_token,
    )


@router.get("/moderation/stats", summary="Report statistics")
def moderation_stats(
    _moderator: User = Depends(get_moderator),
    engine: Tally = Depends(get_engine),
):
    return engine.report_stats()


@router.post(
    "/reports/{report_id}/resolve",
    response_model=ResolutionResponse,
    summary="Resolve a report",
)
def resolve_report(
    report_id: str,
    body: ResolveReportRequest,
    user: User = Depends(get_current_user),
    engine: Tally = Depends(get_engine),
):
    """Apply a moderator decision to an open report."""
    resolution = engine.resolve_report(user.id, report_id, body.decision, body.note)
    return ResolutionResponse(
        report_id=resolution.report_id,
        status=resolution.status.value,
        content_status=resolution.content_status.value,
    )


@router.post(
    "/content/{content_type}/{content_id}/status",
    response_model=AuditEntryResponse,
    summary="Change a content unit's moderation status",
)
def transition(
    content_type: str,
    content_id: str,
    body: TransitionRequest,
    user: User = Depends(get_current_user),
    engine: Tally = Depends(get_engine),
):
    entry = engine.transition(user.id, content_id, content_type, body.to_status, body.reason)
    return _audit_response(entry)


@router.get(
    "/content/{content_type}/{content_id}/audit",
    response_model=list[AuditEntryResponse],
    summary="Moderation history of a content unit",
)
def audit_trail(
    content_type: str,
    content_id: str,
    _moderator: User = Depends(get_moderator),
    engine: Tally = Depends(get_engine),
):
    return [_audit_response(e) for e in engine.audit_trail(content_id, content_type)]
