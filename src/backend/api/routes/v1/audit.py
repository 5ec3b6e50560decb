"""
Audit report endpoints (v1).

The report endpoint answers with a framed text stream: progress frames, a
report sentinel, then the report body, with an error marker appended if
generation fails after the stream has started. Anything rejected before
the stream starts is a regular JSON error.
"""

from __future__ import annotations

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query
from fastapi.responses import StreamingResponse

from api.dependencies import AuditReports
from api.middleware.auth import Owner
from api.middleware.request_context import update_request_context
from core.constants import REPORT_MEDIA_TYPE
from models.schemas.audit import AuditReportRequest, AuditScopeResponse

router = APIRouter()

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}


@router.post(
    "/ai-report",
    summary="Generate AI audit report",
    description=(
        "Analyze the organization's conversation transcripts in a date range and stream "
        "a compliance report. Body format: `[PROGRESS]current/total/phase` lines, then a "
        "`[REPORT]` line, then report text. A failure after the stream started is appended "
        "as `[ERROR: message]`."
    ),
    response_class=StreamingResponse,
    responses={
        200: {
            "description": "Framed report stream",
            "content": {
                "text/plain": {
                    "example": (
                        "[PROGRESS]1/2/map\n[PROGRESS]2/2/map\n[PROGRESS]0/0/reduce\n"
                        "[REPORT]\n## 1. Executive Summary\n..."
                    )
                }
            },
        },
        400: {"description": "No usable report model configured"},
        403: {"description": "Caller is not an organization owner, or quota exhausted"},
        404: {"description": "Organization not found, or no transcripts in range"},
    },
)
async def generate_audit_report(
    body: AuditReportRequest,
    user: Owner,
    service: AuditReports,
) -> StreamingResponse:
    """Validate, then stream the report produced by a background pipeline."""
    update_request_context(audit_from=str(body.date_from), audit_to=str(body.date_to))

    prepared = await service.prepare_report(user, body)
    update_request_context(model_id=prepared.model_id, chunk_count=prepared.chunk_count)

    channel = service.start(prepared)
    return StreamingResponse(
        service.stream(channel),
        media_type=REPORT_MEDIA_TYPE,
        headers=STREAM_HEADERS,
    )


@router.get(
    "/ai-report/scope",
    response_model=AuditScopeResponse,
    summary="Preview report scope",
    description="Count threads, messages and authors a report over the same filter would analyze.",
)
async def get_audit_scope(
    user: Owner,
    service: AuditReports,
    date_from: Annotated[date, Query(alias="from", description="First day of the range (UTC)")],
    date_to: Annotated[date, Query(alias="to", description="Last day of the range (UTC)")],
    user_id: Annotated[UUID | None, Query(description="Restrict to one user's threads")] = None,
) -> AuditScopeResponse:
    """Scope counts for a prospective report."""
    request = AuditReportRequest(date_from=date_from, date_to=date_to, user_id=user_id)
    return await service.get_scope(user, request)
