"""
Health check API schemas.

Provides response models for health, readiness, and liveness probes
with comprehensive OpenAPI documentation.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class DatabaseHealth(BaseModel):
    """Database connection pool health."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "healthy": True,
                "pool_size": 10,
                "pool_free": 8,
                "pool_used": 2,
            }
        }
    )

    healthy: bool = Field(..., description="Database is accessible")
    pool_size: int = Field(default=0, ge=0, description="Total pool size")
    pool_free: int = Field(default=0, ge=0, description="Available connections")
    pool_used: int = Field(default=0, ge=0, description="Active connections")
    error: str | None = Field(default=None, description="Error if unhealthy")


class ReportTasksHealth(BaseModel):
    """Background report producers."""

    active: int = Field(default=0, ge=0, description="Report pipelines still running")


class HealthResponse(BaseModel):
    """Comprehensive health check response."""

    model_config = ConfigDict(
        json_schema_extra={
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
    )

    status: Literal["healthy", "unhealthy"] = Field(
        ...,
        description="Overall system health status",
        json_schema_extra={"example": "healthy"},
    )
    version: str = Field(
        ...,
        description="Application version",
        json_schema_extra={"example": "1.0.0"},
    )
    database: DatabaseHealth = Field(..., description="Database health")
    reports: ReportTasksHealth = Field(default_factory=ReportTasksHealth, description="Report tasks")


class ReadinessResponse(BaseModel):
    """Kubernetes-style readiness probe response."""

    ready: bool = Field(
        ...,
        description="Service is ready to accept traffic",
        json_schema_extra={"example": True},
    )
    error: str | None = Field(
        default=None,
        description="Error message if not ready",
    )


class LivenessResponse(BaseModel):
    """Kubernetes-style liveness probe response."""

    alive: bool = Field(
        default=True,
        description="Process is running",
        json_schema_extra={"example": True},
    )
