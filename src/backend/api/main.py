from __future__ import annotations

import asyncio

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app

from api.middleware.exception_handlers import register_exception_handlers
from api.middleware.request_context import RequestContextMiddleware
from api.routes.v1 import router as v1_router
from core.constants import get_settings
from core.model_catalog import ModelCatalog
from utils.client_factory import create_http_client
from utils.db_utils import check_pool_health, create_database_pool, drain_and_close_pool
from utils.logger import configure_uvicorn_logging, logger

# Settings are loaded via Pydantic Settings with environment-specific file support
# (.env, .env.{APP_ENV}, .env.local) - no manual dotenv loading needed
settings = get_settings()

# Log loaded settings in debug mode
if settings.debug:
    from core.constants import _get_env_files

    logger.info(f"Env files: {[f.name for f in _get_env_files()]}")
    logger.info(
        f"Settings: app_env={settings.app_env}, "
        f"db_pool=[{settings.db_pool_min_size},{settings.db_pool_max_size}], "
        f"report_timeout={settings.audit_report_timeout}s, estimator={settings.token_estimator}"
    )

# Configure uvicorn logging at module level to ensure workers use it
configure_uvicorn_logging()


async def _drain_report_tasks(tasks: set[asyncio.Task[object]], timeout: float) -> None:
    """Let running reports finish (and commit usage), cancelling stragglers."""
    pending = {task for task in tasks if not task.done()}
    if not pending:
        return

    logger.info(f"Waiting up to {timeout}s for {len(pending)} running report(s)")
    _, still_running = await asyncio.wait(pending, timeout=timeout)
    if not still_running:
        return

    logger.warning(f"Cancelling {len(still_running)} report(s) still running at shutdown")
    for task in still_running:
        task.cancel()
    await asyncio.gather(*still_running, return_exceptions=True)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup and shutdown with graceful handling."""
    app.state.report_tasks = set()

    # Model catalog with per-deployment context window overrides
    app.state.model_catalog = ModelCatalog.from_settings(settings)

    # Shared HTTP client for every model provider
    app.state.http_client = create_http_client(read_timeout=settings.http_read_timeout)

    app.state.db_pool = await create_database_pool(settings)

    # Verify database connectivity
    pool_stats = await check_pool_health(app.state.db_pool)
    if not pool_stats.healthy:
        logger.error("Database health check failed during startup")
        raise RuntimeError("Database connection failed")
    logger.info(f"Database pool healthy: {pool_stats.size} connections, {pool_stats.idle} idle")

    try:
        yield
    finally:
        logger.info("Initiating graceful shutdown sequence")

        # Phase 1: Let in-flight reports finish so their usage is committed
        await _drain_report_tasks(app.state.report_tasks, timeout=settings.shutdown_timeout)

        # Phase 2: Close provider HTTP connections
        await app.state.http_client.aclose()

        # Phase 3: Gracefully close database pool
        await drain_and_close_pool(app.state.db_pool, timeout=settings.shutdown_timeout)


app = FastAPI(
    title="Chat Audit API",
    description="""
## Chat Audit API

AI compliance reports over an organization's chat transcripts.

### Features
- **Audit Reports**: Map-reduce analysis of every thread in a date range, streamed as it is written
- **Scope Preview**: Thread, message and author counts before running a report
- **Usage Accounting**: Model tokens are charged to the organization's monthly quota

### Authentication
All endpoints except health checks require a JWT Bearer token.
Audit endpoints require the organization OWNER role.

### Versioning
API uses URL path versioning: `/api/v1/...`
Breaking changes will increment the version number.
""",
    version=settings.app_version,
    lifespan=lifespan,
    openapi_tags=[
        {
            "name": "Health",
            "description": "Health check endpoints for monitoring and orchestration",
        },
        {
            "name": "Audit",
            "description": "AI audit reports and scope previews",
        },
    ],
    openapi_url="/api/v1/openapi.json",
    docs_url="/api/v1/docs",
    redoc_url="/api/v1/redoc",
)

# Register global exception handlers for consistent error responses
register_exception_handlers(app)

# Request context middleware (adds request ID tracking)
# Note: Middleware is executed in reverse order of registration
app.add_middleware(RequestContextMiddleware)

# CORS configuration (uses Settings for origin control)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)

# Routes - API v1
app.include_router(v1_router, prefix="/api/v1")

# Prometheus scrape endpoint
app.mount("/metrics", make_asgi_app())


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        reload_dirs=["src"],
        log_config=None,
    )
