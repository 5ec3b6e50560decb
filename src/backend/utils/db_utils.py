"""asyncpg pool helpers for the transcript and organization stores.

Transcript queries are plain SELECTs and may be retried after a lost
connection. The quota UPDATE only ever goes through acquire_connection, so a
usage charge is applied at most once.
"""

from __future__ import annotations

import asyncio
import functools

from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, ParamSpec, TypeVar

import asyncpg

from utils.logger import logger
from utils.metrics import db_pool_size, db_read_retries_total

if TYPE_CHECKING:
    from core.constants import Settings

P = ParamSpec("P")
T = TypeVar("T")


class PoolUnavailableError(Exception):
    """No database connection could be opened or checked out in time."""


#: Failures after which re-running a read is safe.
RETRYABLE_READ_ERRORS: tuple[type[Exception], ...] = (
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
    PoolUnavailableError,
)


@dataclass(frozen=True, slots=True)
class PoolStats:
    """Outcome of a pool health query plus the pool's connection counts."""

    healthy: bool
    size: int
    idle: int
    min_size: int
    max_size: int

    @property
    def used(self) -> int:
        return self.size - self.idle


async def create_database_pool(settings: Settings) -> asyncpg.Pool:
    """Open the pool from the db_* settings.

    Statement and lock timeouts are set as server settings on every
    connection, so a stuck transcript query cannot hold a report open past
    db_command_timeout.

    Raises:
        PoolUnavailableError: If the initial connections cannot be opened
            within db_connection_timeout.
    """
    timeout_ms = str(int(settings.db_command_timeout * 1000))
    try:
        async with asyncio.timeout(settings.db_connection_timeout):
            pool = await asyncpg.create_pool(
                dsn=settings.database_url,
                min_size=settings.db_pool_min_size,
                max_size=settings.db_pool_max_size,
                command_timeout=settings.db_command_timeout,
                statement_cache_size=settings.db_statement_cache_size,
                max_inactive_connection_lifetime=settings.db_max_inactive_connection_lifetime,
                server_settings={"statement_timeout": timeout_ms, "lock_timeout": timeout_ms},
            )
    except TimeoutError as e:
        raise PoolUnavailableError(
            f"Database did not accept connections within {settings.db_connection_timeout}s"
        ) from e
    except (OSError, asyncpg.PostgresError) as e:
        raise PoolUnavailableError(f"Could not open database pool: {e}") from e

    logger.info(f"Database pool open ({settings.db_pool_min_size}-{settings.db_pool_max_size} connections)")
    return pool


@asynccontextmanager
async def acquire_connection(
    pool: asyncpg.Pool,
    *,
    timeout: float | None = None,
) -> AsyncGenerator[asyncpg.Connection, None]:
    """Check a connection out of the pool.

    Raises:
        PoolUnavailableError: If every connection stays busy for timeout seconds.
    """
    try:
        async with pool.acquire(timeout=timeout) as conn:
            yield conn
    except TimeoutError as e:
        raise PoolUnavailableError(f"No database connection free within {timeout}s") from e


def retry_read(
    attempts: int = 3,
    base_delay: float = 0.2,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Re-run a read-only query after a lost connection, doubling the delay each time.

    Only for idempotent SELECTs. The last attempt's error propagates unchanged.
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        query = func.__name__

        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            for attempt in range(1, attempts):
                try:
                    return await func(*args, **kwargs)
                except RETRYABLE_READ_ERRORS as e:  # noqa: PERF203
                    delay = base_delay * 2 ** (attempt - 1)
                    db_read_retries_total.labels(query=query).inc()
                    logger.warning(
                        f"{query} lost its connection (attempt {attempt}/{attempts}), "
                        f"retrying in {delay:.2f}s: {e}"
                    )
                    await asyncio.sleep(delay)
            return await func(*args, **kwargs)

        return wrapper

    return decorator


async def check_pool_health(pool: asyncpg.Pool) -> PoolStats:
    """Run SELECT 1 on a pooled connection and export the pool size gauge."""
    try:
        async with acquire_connection(pool, timeout=5.0) as conn:
            healthy = await conn.fetchval("SELECT 1") == 1
    except Exception as e:
        logger.warning(f"Database health query failed: {e}")
        healthy = False

    size = pool.get_size()
    db_pool_size.set(size)
    return PoolStats(
        healthy=healthy,
        size=size,
        idle=pool.get_idle_size(),
        min_size=pool.get_min_size(),
        max_size=pool.get_max_size(),
    )


async def drain_and_close_pool(pool: asyncpg.Pool, timeout: float) -> None:
    """Close the pool once every connection is back, or after timeout seconds."""
    try:
        async with asyncio.timeout(timeout):
            while pool.get_size() > pool.get_idle_size():
                await asyncio.sleep(0.1)
    except TimeoutError:
        logger.warning(
            f"Closing database pool with {pool.get_size() - pool.get_idle_size()} connections still checked out"
        )

    await pool.close()
    logger.info("Database pool closed")
