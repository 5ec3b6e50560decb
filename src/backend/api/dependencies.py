from __future__ import annotations

import asyncio

from typing import Annotated

import asyncpg

from fastapi import Depends, Request

from api.services.audit_report_service import AuditReportService
from core.constants import Settings, get_settings
from core.model_catalog import ModelCatalog


def get_app_settings() -> Settings:
    """Provide application settings via dependency injection.

    Settings are validated at startup and cached for performance.

    Usage in routes:
        @router.get("/example")
        async def example(settings: AppSettings):
            return {"debug": settings.debug}
    """
    return get_settings()


async def get_db(request: Request) -> asyncpg.Pool:
    """Get database connection pool from application state."""
    return request.app.state.db_pool


def get_model_catalog(request: Request) -> ModelCatalog:
    """Get the model catalog built at startup."""
    return request.app.state.model_catalog


def get_report_tasks(request: Request) -> set[asyncio.Task[object]]:
    """Running report producers, drained on shutdown."""
    return request.app.state.report_tasks


def get_audit_report_service(
    request: Request,
    db: Annotated[asyncpg.Pool, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_app_settings)],
    catalog: Annotated[ModelCatalog, Depends(get_model_catalog)],
) -> AuditReportService:
    """Provide the audit report service with the shared HTTP client and task set."""
    return AuditReportService(
        db,
        settings,
        catalog,
        tasks=get_report_tasks(request),
        http_client=request.app.state.http_client,
    )


# Type aliases for cleaner route signatures
DB = Annotated[asyncpg.Pool, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
ReportTasks = Annotated[set[asyncio.Task[object]], Depends(get_report_tasks)]
AuditReports = Annotated[AuditReportService, Depends(get_audit_report_service)]
