"""
Organization lookups for audit reports: report model selection and the
monthly token quota.
"""

from __future__ import annotations

import time

from uuid import UUID

import asyncpg

from api.middleware.exception_handlers import (
    ModelNotConfiguredError,
    QuotaExceededError,
    ResourceNotFoundError,
)
from utils.db_utils import acquire_connection
from utils.logger import logger
from utils.metrics import db_query_duration_seconds


def select_report_model(organization: asyncpg.Record) -> str:
    """The organization's report model: precision, else balanced, else fast mode.

    Raises:
        ModelNotConfiguredError: If no mode has a model.
    """
    model_id = (
        organization["precision_mode_model"]
        or organization["balanced_mode_model"]
        or organization["fast_mode_model"]
    )
    if not model_id:
        raise ModelNotConfiguredError()
    return str(model_id)


def ensure_quota_available(organization: asyncpg.Record) -> None:
    """Reject a new report once the monthly limit is used up.

    A report already running is never cut off by the quota; it can overshoot
    the limit by its own usage.
    """
    limit = organization["token_monthly_limit"]
    current = organization["current_usage"]
    if limit is not None and current >= limit:
        raise QuotaExceededError(current_usage=current, limit=limit)


class OrganizationQuota:
    """Quota counter of one organization."""

    def __init__(self, pool: asyncpg.Pool, organization_id: UUID):
        self.pool = pool
        self.organization_id = organization_id

    async def increment_usage(self, amount: int) -> None:
        """Atomically add amount to the organization's usage counter."""
        started = time.perf_counter()
        async with acquire_connection(self.pool) as conn:
            await conn.execute(
                """
                UPDATE organizations
                SET current_usage = current_usage + $2
                WHERE id = $1
                """,
                self.organization_id,
                amount,
            )
        db_query_duration_seconds.labels(query_type="update").observe(time.perf_counter() - started)
        logger.debug(f"Organization {self.organization_id} usage +{amount}")


class OrganizationService:
    """Reads organization settings."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def get_organization(self, organization_id: UUID) -> asyncpg.Record:
        """Fetch an organization.

        Raises:
            ResourceNotFoundError: If it does not exist.
        """
        async with acquire_connection(self.pool) as conn:
            organization = await conn.fetchrow(
                """
                SELECT id, name, precision_mode_model, balanced_mode_model, fast_mode_model,
                       token_monthly_limit, current_usage
                FROM organizations
                WHERE id = $1
                """,
                organization_id,
            )
        if organization is None:
            raise ResourceNotFoundError("Organization", str(organization_id))
        return organization

    def quota(self, organization_id: UUID) -> OrganizationQuota:
        return OrganizationQuota(self.pool, organization_id)
