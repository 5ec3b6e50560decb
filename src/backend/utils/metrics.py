"""
Prometheus metrics configuration for Chat Audit.

Defines custom metrics for the report pipeline and its collaborators.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# Use standard Prometheus naming conventions: namespace_subsystem_name_unit
NAMESPACE = "chataudit"

# ============================================================================
# Request Metrics
# ============================================================================

request_duration_seconds = Histogram(
    f"{NAMESPACE}_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path", "status"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0),
)


# ============================================================================
# Audit Report Metrics
# ============================================================================

audit_reports_active = Gauge(
    f"{NAMESPACE}_audit_reports_active",
    "Number of report pipelines currently running",
)

audit_reports_total = Counter(
    f"{NAMESPACE}_audit_reports_total",
    "Total number of report runs by mode and outcome",
    ["mode", "outcome"],  # mode: "direct", "synthesis"; outcome: "success", "failed", "timeout", "disconnected"
)

audit_report_chunks = Histogram(
    f"{NAMESPACE}_audit_report_chunks",
    "Number of chunks per report run",
    buckets=(1, 2, 4, 8, 16, 32, 64, 128),
)

audit_report_duration_seconds = Histogram(
    f"{NAMESPACE}_audit_report_duration_seconds",
    "Wall-clock duration of a report run in seconds",
    ["mode"],
    buckets=(1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0),
)

audit_model_calls_total = Counter(
    f"{NAMESPACE}_audit_model_calls_total",
    "Total number of model calls made by the report pipeline",
    ["phase", "status"],  # phase: "map", "reduce", "direct"; status: "success", "error"
)

audit_tokens_total = Counter(
    f"{NAMESPACE}_audit_tokens_total",
    "Total tokens consumed by report runs",
    ["phase", "type"],  # type values: "input", "output"
)

audit_usage_commits_total = Counter(
    f"{NAMESPACE}_audit_usage_commits_total",
    "Usage commits to the organization quota",
    ["status"],  # "success", "error"
)


# ============================================================================
# Database Metrics
# ============================================================================

db_pool_size = Gauge(
    f"{NAMESPACE}_db_pool_size",
    "Current size of the database connection pool",
)

db_query_duration_seconds = Histogram(
    f"{NAMESPACE}_db_query_duration_seconds",
    "Database query duration in seconds",
    ["query_type"],  # "select", "update"
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
)

db_read_retries_total = Counter(
    f"{NAMESPACE}_db_read_retries_total",
    "Transcript reads retried after a lost connection",
    ["query"],
)
