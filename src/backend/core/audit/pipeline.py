"""
Map-reduce audit report pipeline.

One chunk: the transcript goes straight to a single streamed report call
(direct mode). Several chunks: each chunk is analyzed by a non-streaming call
(map), strictly in order, and the analyses are combined by one streamed report
call (reduce). Progress frames precede the [REPORT] sentinel; the report text
follows it unframed.

Failures are never retried here. Whatever usage was incurred before a failure
is still charged, once, after the stream has been closed.
"""

from __future__ import annotations

import asyncio
import time

from collections.abc import Sequence
from typing import TYPE_CHECKING, Literal

from core.audit.framing import ReportChannel
from core.audit.transcript import RECORD_SEPARATOR, serialize_records
from core.audit.usage import QuotaStore, UsageTally
from core.constants import (
    AUDIT_REPORT_TIMEOUT_SECONDS,
    ERROR_REPORT_CANCELLED,
    ERROR_REPORT_FAILED,
    MAP_MAX_OUTPUT_TOKENS,
    PHASE_DIRECT,
    PHASE_MAP,
    PHASE_REDUCE,
    REDUCE_MAX_OUTPUT_TOKENS,
)
from core.prompts import (
    build_chunk_message,
    build_map_instructions,
    build_report_instructions,
    format_analysis_header,
)
from models.audit_models import Chunk, IntermediateAnalysis, Phase, ReportScope, TokenUsage
from utils.logger import logger
from utils.metrics import (
    audit_model_calls_total,
    audit_report_chunks,
    audit_report_duration_seconds,
    audit_reports_active,
    audit_reports_total,
    audit_tokens_total,
    audit_usage_commits_total,
)

if TYPE_CHECKING:
    from integrations.model_providers import ModelProvider

#: How a run ended.
ReportOutcome = Literal["success", "failed", "timeout", "disconnected", "cancelled"]


class ClientDisconnected(Exception):
    """The consumer closed the channel before the next model call."""


def build_synthesis_input(analyses: Sequence[IntermediateAnalysis]) -> str:
    """Concatenate intermediate analyses in chunk order, each under its label."""
    sections = [
        f"{format_analysis_header(a.ordinal, a.total, a.record_count, a.turn_count)}\n{a.text}"
        for a in sorted(analyses, key=lambda a: a.index)
    ]
    return RECORD_SEPARATOR.join(sections)


def _record_usage_metrics(phase: Phase, usage: TokenUsage) -> None:
    audit_tokens_total.labels(phase=phase, type="input").inc(usage.input_tokens)
    audit_tokens_total.labels(phase=phase, type="output").inc(usage.output_tokens)


class AuditReportPipeline:
    """One report run over pre-partitioned chunks.

    Args:
        provider: Model used for every call of the run
        chunks: Output of partition_records; must not be empty
        scope: Date range and totals shown in the report prompt
        language: Business language the report is written in
        tally: Usage accumulator (a fresh one by default)
    """

    def __init__(
        self,
        provider: ModelProvider,
        chunks: Sequence[Chunk],
        scope: ReportScope,
        *,
        language: str = "English",
        tally: UsageTally | None = None,
        map_max_output_tokens: int = MAP_MAX_OUTPUT_TOKENS,
        reduce_max_output_tokens: int = REDUCE_MAX_OUTPUT_TOKENS,
    ):
        if not chunks:
            raise ValueError("nothing to analyze: no chunks")
        self._provider = provider
        self._chunks = tuple(chunks)
        self._scope = scope
        self._language = language
        self._tally = tally if tally is not None else UsageTally()
        self._map_max_output_tokens = map_max_output_tokens
        self._reduce_max_output_tokens = reduce_max_output_tokens

    @property
    def tally(self) -> UsageTally:
        return self._tally

    @property
    def mode(self) -> Literal["direct", "synthesis"]:
        return "direct" if len(self._chunks) == 1 else "synthesis"

    async def run(self, channel: ReportChannel) -> str:
        """Write the framed report into the channel.

        Returns:
            The report text as produced by the model.

        Raises:
            ClientDisconnected: If the channel closed before a model call.
            Exception: Any model-call failure, unchanged.
        """
        logger.info(
            f"Audit report: {self._scope.record_count} threads, {self._scope.turn_count} messages, "
            f"{len(self._chunks)} chunk(s), {self.mode} mode",
            phase=self.mode,
        )

        if len(self._chunks) == 1:
            reduce_input = serialize_records(self._chunks[0].records)
            return await self._reduce(channel, PHASE_DIRECT, 0, 1, reduce_input)

        analyses = await self._map(channel)
        return await self._reduce(channel, PHASE_REDUCE, 0, 0, build_synthesis_input(analyses))

    async def _map(self, channel: ReportChannel) -> list[IntermediateAnalysis]:
        total = len(self._chunks)
        system_prompt = build_map_instructions(self._language)
        analyses: list[IntermediateAnalysis] = []

        for index, chunk in enumerate(self._chunks):
            if channel.is_closed:
                raise ClientDisconnected(f"client left before chunk {index + 1}/{total}")
            channel.send_progress(index + 1, total, PHASE_MAP)

            message = build_chunk_message(
                index, total, chunk.record_count, chunk.turn_count, serialize_records(chunk.records)
            )
            started = time.perf_counter()
            try:
                completion = await self._provider.complete(
                    system_prompt,
                    [{"role": "user", "content": message}],
                    self._map_max_output_tokens,
                )
            except Exception:
                audit_model_calls_total.labels(phase=PHASE_MAP, status="error").inc()
                raise

            audit_model_calls_total.labels(phase=PHASE_MAP, status="success").inc()
            self._tally.add(completion.usage)
            _record_usage_metrics(PHASE_MAP, completion.usage)
            logger.log_model_call(
                PHASE_MAP,
                self._provider.model,
                completion.usage,
                duration_ms=(time.perf_counter() - started) * 1000,
                output=completion.text,
                chunk=f"{index + 1}/{total}",
            )

            analyses.append(
                IntermediateAnalysis(
                    index=index,
                    total=total,
                    record_count=chunk.record_count,
                    turn_count=chunk.turn_count,
                    text=completion.text,
                )
            )

        return analyses

    async def _reduce(self, channel: ReportChannel, phase: Phase, current: int, total: int, reduce_input: str) -> str:
        if channel.is_closed:
            raise ClientDisconnected("client left before the report call")
        channel.send_progress(current, total, phase)

        system_prompt = build_report_instructions(
            total_threads=self._scope.record_count,
            total_messages=self._scope.turn_count,
            date_from=self._scope.date_from,
            date_to=self._scope.date_to,
            language=self._language,
        )
        usage_box: list[TokenUsage] = []

        def on_finish(usage: TokenUsage) -> None:
            usage_box.append(usage)
            self._tally.add(usage)
            _record_usage_metrics(phase, usage)

        started = time.perf_counter()
        stream = self._provider.stream(
            system_prompt,
            [{"role": "user", "content": reduce_input}],
            self._reduce_max_output_tokens,
            on_finish=on_finish,
        )
        channel.start_report()

        parts: list[str] = []
        try:
            # A closed channel drops the text; the call in flight still runs to
            # completion so its usage is reported
            async for fragment in stream:
                channel.send_text(fragment)
                parts.append(fragment)
        except Exception:
            audit_model_calls_total.labels(phase=phase, status="error").inc()
            raise

        audit_model_calls_total.labels(phase=phase, status="success").inc()
        logger.log_model_call(
            phase,
            self._provider.model,
            usage_box[0] if usage_box else TokenUsage(),
            duration_ms=(time.perf_counter() - started) * 1000,
        )
        return "".join(parts)

    async def execute(
        self,
        channel: ReportChannel,
        quota_store: QuotaStore,
        timeout: float = AUDIT_REPORT_TIMEOUT_SECONDS,
    ) -> ReportOutcome:
        """Run to completion under a wall-clock ceiling, then close and charge.

        Failures after the first byte are reported in-stream with the error
        marker. The channel is always closed before usage is committed, and a
        failed commit is logged rather than raised.
        """
        started = time.perf_counter()
        outcome: ReportOutcome = "cancelled"
        audit_reports_active.inc()
        audit_report_chunks.observe(len(self._chunks))
        deadline = asyncio.timeout(timeout)

        try:
            async with deadline:
                await self.run(channel)
            outcome = "success"
        except ClientDisconnected as exc:
            outcome = "disconnected"
            logger.info(f"Audit report stopped: {exc}")
        except asyncio.CancelledError:
            logger.warning("Audit report cancelled before completion")
            channel.send_error(ERROR_REPORT_CANCELLED)
            raise
        except TimeoutError as exc:
            if deadline.expired():
                outcome = "timeout"
                logger.error(f"Audit report exceeded {timeout:.0f}s")
                channel.send_error(f"Report generation timed out after {timeout:.0f} seconds")
            else:
                # Raised inside the run, e.g. a provider read timeout
                outcome = "failed"
                logger.error(f"Audit report failed: {exc!r}", exc_info=True)
                channel.send_error(str(exc) or ERROR_REPORT_FAILED)
        except Exception as exc:
            outcome = "failed"
            logger.error(f"Audit report failed: {exc}", exc_info=True)
            channel.send_error(str(exc) or ERROR_REPORT_FAILED)
        finally:
            channel.close()
            audit_reports_active.dec()
            await self._commit_usage(quota_store)
            duration = time.perf_counter() - started
            audit_report_duration_seconds.labels(mode=self.mode).observe(duration)
            audit_reports_total.labels(mode=self.mode, outcome=outcome).inc()
            logger.info(
                f"Audit report {outcome} in {duration:.1f}s ({self._tally.calls} model calls, "
                f"{self._tally.total} tokens)",
                phase=self.mode,
                tokens=self._tally.total,
            )

        return outcome

    async def _commit_usage(self, quota_store: QuotaStore) -> None:
        try:
            amount = await self._tally.commit(quota_store)
        except Exception as exc:
            audit_usage_commits_total.labels(status="error").inc()
            logger.error(f"Failed to commit {self._tally.total} tokens of usage: {exc}", exc_info=True)
            return
        if amount:
            audit_usage_commits_total.labels(status="success").inc()
            logger.info(f"Committed {amount} tokens of usage", tokens=amount)
