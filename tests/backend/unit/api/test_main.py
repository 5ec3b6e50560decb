import asyncio

from unittest.mock import AsyncMock, Mock, patch

import pytest

from api.main import _drain_report_tasks, app, lifespan
from utils.db_utils import PoolStats


def make_settings() -> Mock:
    mock_settings = Mock()
    mock_settings.database_url = "postgres://test"
    mock_settings.db_pool_min_size = 1
    mock_settings.db_pool_max_size = 1
    mock_settings.db_command_timeout = 10.0
    mock_settings.db_connection_timeout = 10.0
    mock_settings.db_statement_cache_size = 100
    mock_settings.db_max_inactive_connection_lifetime = 300.0
    mock_settings.shutdown_timeout = 0.05
    mock_settings.http_read_timeout = 10.0
    mock_settings.model_context_windows = {"gpt-4o": 64000}
    mock_settings.default_context_window = 128000
    return mock_settings


@pytest.mark.asyncio
async def test_lifespan_startup_and_shutdown() -> None:
    """Test successful application startup and graceful shutdown."""
    mock_app = Mock()
    mock_app.state = Mock()
    settings = make_settings()

    with (
        patch("api.main.settings", settings),
        patch("api.main.create_http_client") as mock_create_http,
        patch("api.main.create_database_pool", new_callable=AsyncMock) as mock_create_db,
        patch("api.main.check_pool_health", new_callable=AsyncMock) as mock_check_health,
        patch("api.main.drain_and_close_pool", new_callable=AsyncMock) as mock_close_db,
    ):
        mock_check_health.return_value = PoolStats(healthy=True, size=2, idle=2, min_size=2, max_size=10)
        mock_db_pool = Mock()
        mock_create_db.return_value = mock_db_pool
        mock_http_client = Mock()
        mock_http_client.aclose = AsyncMock()
        mock_create_http.return_value = mock_http_client

        async with lifespan(mock_app):
            mock_create_db.assert_awaited_once_with(settings)
            mock_check_health.assert_called_once()
            mock_create_http.assert_called_once_with(read_timeout=10.0)

            assert mock_app.state.db_pool == mock_db_pool
            assert mock_app.state.http_client == mock_http_client
            assert mock_app.state.report_tasks == set()
            assert mock_app.state.model_catalog.context_window("gpt-4o") == 64000

        mock_http_client.aclose.assert_awaited_once()
        mock_close_db.assert_awaited_once_with(mock_db_pool, timeout=0.05)


@pytest.mark.asyncio
async def test_lifespan_startup_db_failure() -> None:
    """Test startup fails if DB is unhealthy."""
    mock_app = Mock()

    with (
        patch("api.main.settings", make_settings()),
        patch("api.main.create_http_client"),
        patch("api.main.create_database_pool", new_callable=AsyncMock),
        patch("api.main.check_pool_health", new_callable=AsyncMock) as mock_check_health,
    ):
        mock_check_health.return_value = PoolStats(healthy=False, size=0, idle=0, min_size=2, max_size=10)

        with pytest.raises(RuntimeError, match="Database connection failed"):
            async with lifespan(mock_app):
                pass


@pytest.mark.asyncio
async def test_drain_waits_for_finished_reports() -> None:
    finished: list[str] = []

    async def report() -> None:
        await asyncio.sleep(0.01)
        finished.append("done")

    task = asyncio.create_task(report())

    await _drain_report_tasks({task}, timeout=1.0)

    assert finished == ["done"]


@pytest.mark.asyncio
async def test_drain_cancels_stragglers() -> None:
    task = asyncio.create_task(asyncio.sleep(10))

    await _drain_report_tasks({task}, timeout=0.01)

    assert task.cancelled()


@pytest.mark.asyncio
async def test_drain_with_no_tasks() -> None:
    await _drain_report_tasks(set(), timeout=0.01)


def test_routes_registered() -> None:
    paths = {getattr(route, "path", None) for route in app.routes}

    assert "/api/v1/audit/ai-report" in paths
    assert "/api/v1/audit/ai-report/scope" in paths
    assert "/api/v1/health" in paths
    assert "/metrics" in paths
