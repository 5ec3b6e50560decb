"""
Audit report API schemas.

The report itself is a framed text stream, not JSON; only the request body
and the scope preview have schemas.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

# =============================================================================
# Request Models
# =============================================================================


class AuditReportRequest(BaseModel):
    """Date range and optional user filter for a report."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "from": "2025-01-01",
                "to": "2025-01-31",
                "user_id": None,
            }
        },
    )

    date_from: date = Field(
        ...,
        alias="from",
        description="First day of the range (inclusive, UTC)",
        json_schema_extra={"example": "2025-01-01"},
    )
    date_to: date = Field(
        ...,
        alias="to",
        description="Last day of the range (inclusive through end of day, UTC)",
        json_schema_extra={"example": "2025-01-31"},
    )
    user_id: UUID | None = Field(
        default=None,
        description="Restrict the report to one user's threads",
    )

    @model_validator(mode="after")
    def validate_range(self) -> AuditReportRequest:
        if self.date_to < self.date_from:
            raise ValueError("'to' must not be earlier than 'from'")
        return self

    @property
    def start(self) -> datetime:
        """Start of the range: 00:00:00 UTC on date_from."""
        return datetime.combine(self.date_from, time.min, tzinfo=UTC)

    @property
    def end(self) -> datetime:
        """End of the range: the last microsecond of date_to, UTC."""
        return datetime.combine(self.date_to, time.max, tzinfo=UTC)


# =============================================================================
# Response Models
# =============================================================================


class AuditScopeResponse(BaseModel):
    """How much data a report over the same filter would analyze."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "thread_count": 42,
                "message_count": 380,
                "user_count": 7,
            }
        }
    )

    thread_count: int = Field(..., ge=0, description="Threads created in the range")
    message_count: int = Field(..., ge=0, description="Messages in those threads")
    user_count: int = Field(..., ge=0, description="Distinct thread authors")
