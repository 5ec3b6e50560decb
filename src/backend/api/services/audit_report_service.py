"""
Audit report orchestration.

Everything that can be rejected cheaply (organization, model, quota, context
budget, empty scope) is checked before a response starts, so those failures
get a normal JSON error. Once checks pass, a producer task runs the pipeline
into a ReportChannel and the HTTP response drains the channel.
"""

from __future__ import annotations

import asyncio

from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass

import asyncpg
import httpx

from api.middleware.exception_handlers import ModelNotConfiguredError, NoTranscriptsError
from api.services.organization_service import (
    OrganizationService,
    ensure_quota_available,
    select_report_model,
)
from api.services.transcript_store import TranscriptStore
from core.audit import (
    AuditReportPipeline,
    QuotaStore,
    ReportChannel,
    map_token_budget,
    partition_records,
)
from core.constants import Settings
from core.model_catalog import ModelCatalog
from integrations.model_providers import (
    ModelProvider,
    ProviderConfigurationError,
    create_model_provider,
)
from models.audit_models import ReportScope
from models.schemas.audit import AuditReportRequest, AuditScopeResponse
from models.schemas.auth import UserInfo
from utils.logger import logger
from utils.token_utils import get_token_estimator

ProviderFactory = Callable[[str, ModelCatalog, Settings, httpx.AsyncClient | None], ModelProvider]


@dataclass
class PreparedReport:
    """A report that passed every pre-stream check and is ready to run."""

    pipeline: AuditReportPipeline
    quota: QuotaStore
    model_id: str
    chunk_count: int


class AuditReportService:
    """Builds and starts audit report runs for one organization owner."""

    def __init__(
        self,
        pool: asyncpg.Pool,
        settings: Settings,
        catalog: ModelCatalog,
        *,
        tasks: set[asyncio.Task[object]] | None = None,
        http_client: httpx.AsyncClient | None = None,
        provider_factory: ProviderFactory = create_model_provider,
    ):
        self.settings = settings
        self.catalog = catalog
        self.transcripts = TranscriptStore(pool)
        self.organizations = OrganizationService(pool)
        self._tasks: set[asyncio.Task[object]] = tasks if tasks is not None else set()
        self._http_client = http_client
        self._provider_factory = provider_factory

    async def get_scope(self, user: UserInfo, request: AuditReportRequest) -> AuditScopeResponse:
        """Counts for the report filter, without any model call."""
        return await self.transcripts.count_scope(
            user.organization_id,
            request.start,
            request.end,
            request.user_id,
        )

    async def prepare_report(self, user: UserInfo, request: AuditReportRequest) -> PreparedReport:
        """Run every pre-stream check and build the pipeline.

        Raises:
            ResourceNotFoundError: Organization does not exist.
            ModelNotConfiguredError: No model, unusable provider, or a context
                window too small for any transcript.
            QuotaExceededError: Monthly token quota already used up.
            NoTranscriptsError: Nothing matches the range and filter.
        """
        organization = await self.organizations.get_organization(user.organization_id)
        model_id = select_report_model(organization)
        ensure_quota_available(organization)

        try:
            provider = self._provider_factory(model_id, self.catalog, self.settings, self._http_client)
        except ProviderConfigurationError as exc:
            raise ModelNotConfiguredError(str(exc), cause=exc) from exc

        context_window = self.catalog.context_window(model_id)
        budget = map_token_budget(context_window)
        if budget <= 0:
            raise ModelNotConfiguredError(
                f"Context window of {model_id} ({context_window} tokens) leaves no room for transcripts"
            )

        records = await self.transcripts.fetch_records(
            user.organization_id,
            request.start,
            request.end,
            request.user_id,
        )
        if not records:
            raise NoTranscriptsError()

        estimator = get_token_estimator(self.settings.token_estimator, model_id)
        chunks = partition_records(records, budget, estimator)
        scope = ReportScope(
            date_from=request.date_from,
            date_to=request.date_to,
            record_count=len(records),
            turn_count=sum(record.turn_count for record in records),
        )

        logger.info(
            f"Prepared audit report: model={model_id}, budget={budget}, "
            f"{scope.record_count} threads, {scope.turn_count} messages, {len(chunks)} chunk(s)"
        )

        pipeline = AuditReportPipeline(
            provider,
            chunks,
            scope,
            language=self.settings.report_language,
        )
        return PreparedReport(
            pipeline=pipeline,
            quota=self.organizations.quota(user.organization_id),
            model_id=model_id,
            chunk_count=len(chunks),
        )

    def start(self, prepared: PreparedReport) -> ReportChannel:
        """Launch the producer task and return the channel it writes to."""
        channel = ReportChannel()
        task = asyncio.create_task(
            prepared.pipeline.execute(channel, prepared.quota, timeout=self.settings.audit_report_timeout)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return channel

    @staticmethod
    async def stream(channel: ReportChannel) -> AsyncIterator[bytes]:
        """Response body: the channel's bytes until it closes.

        If the response is torn down first (client disconnect), the channel is
        closed so the producer stops issuing model calls.
        """
        try:
            async for data in channel:
                yield data
        finally:
            if not channel.is_closed:
                logger.info("Report client disconnected before the stream ended")
            channel.close()
