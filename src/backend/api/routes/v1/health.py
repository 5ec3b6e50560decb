"""
Health check endpoints (v1).

Provides health, readiness, and liveness probes for load balancers
and orchestrators.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from api.dependencies import DB, AppSettings, ReportTasks
from models.schemas.health import (
    DatabaseHealth,
    HealthResponse,
    LivenessResponse,
    ReadinessResponse,
    ReportTasksHealth,
)
from utils.db_utils import check_pool_health

router = APIRouter()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Database pool statistics and the number of report pipelines still running.",
    responses={
        200: {
            "description": "System health status",
            "content": {
                "application/json": {
                    "example": {
                        "status": "healthy",
                        "version": "1.0.0",
                        "database": {
                            "healthy": True,
                            "pool_size": 10,
                            "pool_free": 8,
                            "pool_used": 2,
                        },
                        "reports": {"active": 1},
                    }
                }
            },
        }
    },
)
async def health_check(db: DB, settings: AppSettings, report_tasks: ReportTasks) -> HealthResponse:
    """Comprehensive health check endpoint."""
    pool_stats = await check_pool_health(db)

    return HealthResponse(
        status="healthy" if pool_stats.healthy else "unhealthy",
        version=settings.app_version,
        database=DatabaseHealth(
            healthy=pool_stats.healthy,
            pool_size=pool_stats.size,
            pool_free=pool_stats.idle,
            pool_used=pool_stats.used,
            error=None if pool_stats.healthy else "health query failed",
        ),
        reports=ReportTasksHealth(active=sum(1 for task in report_tasks if not task.done())),
    )


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    summary="Readiness probe",
    description="Kubernetes-style readiness probe for load balancer integration.",
    responses={
        200: {
            "description": "Service ready",
            "content": {"application/json": {"example": {"ready": True}}},
        },
        503: {
            "description": "Service not ready",
            "content": {"application/json": {"example": {"ready": False, "error": "Database unavailable"}}},
        },
    },
)
async def readiness_check(db: DB) -> ReadinessResponse | JSONResponse:
    """Kubernetes-style readiness probe."""
    try:
        async with db.acquire(timeout=5.0) as conn:
            await conn.fetchval("SELECT 1")
        return ReadinessResponse(ready=True)
    except Exception as e:
        return JSONResponse(
            status_code=503,
            content={"ready": False, "error": str(e)},
        )


@router.get(
    "/health/live",
    response_model=LivenessResponse,
    summary="Liveness probe",
    description="Kubernetes-style liveness probe to confirm process is running.",
    responses={
        200: {
            "description": "Process alive",
            "content": {"application/json": {"example": {"alive": True}}},
        }
    },
)
async def liveness_check() -> LivenessResponse:
    """Kubernetes-style liveness probe."""
    return LivenessResponse(alive=True)
