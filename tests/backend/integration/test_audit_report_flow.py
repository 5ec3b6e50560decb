"""End-to-end audit report flow over HTTP.

Runs the real route, service, transcript store and pipeline against a mocked
connection pool and a scripted model provider.
"""

from __future__ import annotations

import asyncio

from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.dependencies import get_audit_report_service, get_db
from api.middleware.auth import get_current_user
from api.middleware.exception_handlers import register_exception_handlers
from api.routes.v1 import router as v1_router
from api.services.audit_report_service import AuditReportService
from core.audit import parse_report_stream
from core.model_catalog import ModelCatalog
from models.schemas.auth import UserInfo

ORG_ID = uuid4()
T0 = datetime(2025, 1, 10, 9, 0, tzinfo=UTC)


def thread_rows(count: int, content: str) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for i in range(count):
        thread_id = uuid4()
        for j, role in enumerate(("USER", "ASSISTANT")):
            rows.append(
                {
                    "thread_id": thread_id,
                    "thread_title": f"Thread {i + 1}",
                    "thread_created_at": T0 + timedelta(hours=i),
                    "author_email": f"user{i}@example.com",
                    "message_id": uuid4(),
                    "message_role": role,
                    "message_content": content,
                    "message_model_id": "gpt-4o" if role == "ASSISTANT" else None,
                    "message_tokens_used": 10 if role == "ASSISTANT" else None,
                    "message_created_at": T0 + timedelta(hours=i, minutes=j),
                }
            )
    return rows


@pytest.fixture
def organization() -> dict[str, Any]:
    return {
        "id": ORG_ID,
        "name": "Acme",
        "precision_mode_model": "gpt-4o",
        "balanced_mode_model": None,
        "fast_mode_model": None,
        "token_monthly_limit": 1_000_000,
        "current_usage": 0,
    }


@pytest.fixture
def build_app(
    mock_db_pool: MagicMock, test_settings: Any, fake_provider_cls: Any, organization: dict[str, Any]
) -> Any:
    def factory(rows: list[dict[str, Any]], provider: Any, context_window: int = 128000) -> FastAPI:
        conn = mock_db_pool.acquire.return_value.__aenter__.return_value
        conn.fetchrow.return_value = organization
        conn.fetch.return_value = rows

        app = FastAPI()
        register_exception_handlers(app)
        app.include_router(v1_router, prefix="/api/v1")
        app.state.report_tasks = set()

        catalog = ModelCatalog(context_window_overrides={"gpt-4o": context_window})
        owner = UserInfo(id=uuid4(), email="owner@example.com", role="OWNER", organization_id=ORG_ID)

        def service() -> AuditReportService:
            return AuditReportService(
                mock_db_pool,
                test_settings,
                catalog,
                tasks=app.state.report_tasks,
                provider_factory=lambda *_: provider,
            )

        app.dependency_overrides[get_current_user] = lambda: owner
        app.dependency_overrides[get_db] = lambda: mock_db_pool
        app.dependency_overrides[get_audit_report_service] = service
        return app

    return factory


def usage_increments(mock_db_pool: MagicMock) -> list[int]:
    conn = mock_db_pool.acquire.return_value.__aenter__.return_value
    return [call.args[2] for call in conn.execute.call_args_list if "current_usage" in call.args[0]]


def test_direct_report(build_app: Any, fake_provider_cls: Any, mock_db_pool: MagicMock) -> None:
    provider = fake_provider_cls(report_fragments=("## 1. Executive Summary\n", "Nothing to flag."))
    client = TestClient(build_app(thread_rows(2, "hello"), provider))

    response = client.post("/api/v1/audit/ai-report", json={"from": "2025-01-01", "to": "2025-01-31"})

    assert response.status_code == 200
    parsed = parse_report_stream(response.content)
    assert [(p.current, p.total, p.phase) for p in parsed.progress] == [(0, 1, "direct")]
    assert parsed.report == "## 1. Executive Summary\nNothing to flag."
    assert parsed.complete

    assert provider.complete_calls == []
    (reduce_call,) = provider.stream_calls
    transcript = reduce_call["messages"][0]["content"]
    assert "Thread 1" in transcript
    assert "Thread 2" in transcript
    assert usage_increments(mock_db_pool) == [380]


def test_synthesis_report(build_app: Any, fake_provider_cls: Any, mock_db_pool: MagicMock) -> None:
    provider = fake_provider_cls(map_texts=["first findings", "second findings", "third findings"])
    client = TestClient(build_app(thread_rows(3, "x" * 3000), provider, context_window=7000))

    response = client.post("/api/v1/audit/ai-report", json={"from": "2025-01-01", "to": "2025-01-31"})

    parsed = parse_report_stream(response.content)
    assert [(p.current, p.total, p.phase) for p in parsed.progress] == [
        (1, 3, "map"),
        (2, 3, "map"),
        (3, 3, "map"),
        (0, 0, "reduce"),
    ]
    assert parsed.complete
    assert len(provider.complete_calls) == 3

    synthesis_input = provider.stream_calls[0]["messages"][0]["content"]
    assert synthesis_input.index("first findings") < synthesis_input.index("third findings")
    assert usage_increments(mock_db_pool) == [3 * 120 + 380]


def test_map_failure_is_reported_in_stream(build_app: Any, fake_provider_cls: Any, mock_db_pool: MagicMock) -> None:
    provider = fake_provider_cls(fail_map_at=1)
    client = TestClient(build_app(thread_rows(3, "x" * 3000), provider, context_window=7000))

    response = client.post("/api/v1/audit/ai-report", json={"from": "2025-01-01", "to": "2025-01-31"})

    assert response.status_code == 200
    parsed = parse_report_stream(response.content)
    assert not parsed.started
    assert parsed.error == "map call 2 failed"
    assert provider.stream_calls == []
    # Only the completed map call is charged
    assert usage_increments(mock_db_pool) == [120]


def test_empty_scope_is_json_error(build_app: Any, fake_provider_cls: Any, mock_db_pool: MagicMock) -> None:
    client = TestClient(build_app([], fake_provider_cls()))

    response = client.post("/api/v1/audit/ai-report", json={"from": "2025-01-01", "to": "2025-01-31"})

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "AUD_10002"
    assert usage_increments(mock_db_pool) == []


def test_quota_exhausted_is_json_error(
    build_app: Any, fake_provider_cls: Any, organization: dict[str, Any], mock_db_pool: MagicMock
) -> None:
    organization["current_usage"] = organization["token_monthly_limit"]
    provider = fake_provider_cls()
    client = TestClient(build_app(thread_rows(1, "hi"), provider))

    response = client.post("/api/v1/audit/ai-report", json={"from": "2025-01-01", "to": "2025-01-31"})

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "AUD_10003"
    assert provider.stream_calls == []


@pytest.mark.asyncio
async def test_reports_run_concurrently(build_app: Any, fake_provider_cls: Any, test_settings: Any) -> None:
    """Two reports for the same organization are independent pipelines."""
    provider = fake_provider_cls(report_fragments=["a"] * 5, stream_delay=0.01)
    app = build_app(thread_rows(1, "hi"), provider)
    service = app.dependency_overrides[get_audit_report_service]()
    owner = app.dependency_overrides[get_current_user]()

    from models.schemas.audit import AuditReportRequest

    request = AuditReportRequest.model_validate({"from": "2025-01-01", "to": "2025-01-31"})
    channels = [service.start(await service.prepare_report(owner, request)) for _ in range(2)]

    async def drain(channel: Any) -> bytes:
        return b"".join([data async for data in service.stream(channel)])

    bodies = await asyncio.gather(*(drain(channel) for channel in channels))

    for body in bodies:
        assert parse_report_stream(body).report == "aaaaa"
