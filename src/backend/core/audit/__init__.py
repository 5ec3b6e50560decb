"""
Audit report pipeline: serialization, partitioning, map-reduce execution,
stream framing and usage accounting.
"""

from __future__ import annotations

from core.audit.chunking import map_token_budget, partition_records
from core.audit.framing import (
    FramingError,
    ParsedReport,
    ReportChannel,
    ReportStreamParser,
    format_error_marker,
    format_progress_frame,
    parse_report_stream,
)
from core.audit.pipeline import AuditReportPipeline, ClientDisconnected, ReportOutcome, build_synthesis_input
from core.audit.transcript import serialize_record, serialize_records
from core.audit.usage import QuotaStore, UsageTally

__all__ = [
    "AuditReportPipeline",
    "ClientDisconnected",
    "FramingError",
    "ParsedReport",
    "QuotaStore",
    "ReportChannel",
    "ReportOutcome",
    "ReportStreamParser",
    "UsageTally",
    "build_synthesis_input",
    "format_error_marker",
    "format_progress_frame",
    "map_token_budget",
    "parse_report_stream",
    "partition_records",
    "serialize_record",
    "serialize_records",
]
