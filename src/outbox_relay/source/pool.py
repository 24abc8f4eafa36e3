"""Async connection pool for the outbox source database."""

from __future__ import annotations

import psycopg
import structlog
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from outbox_relay.config.models import SourceConfig

logger = structlog.get_logger()


def build_pool(config: SourceConfig) -> AsyncConnectionPool:
    """Create a closed pool; every connection gets a server-side statement timeout."""
    timeout_ms = int(config.statement_timeout_seconds * 1000)
    return AsyncConnectionPool(
        conninfo=config.conninfo,
        min_size=config.pool_min_size,
        max_size=config.pool_max_size,
        timeout=config.connect_timeout_seconds,
        kwargs={
            "row_factory": dict_row,
            "options": f"-c statement_timeout={timeout_ms}",
        },
        name="outbox-source",
        open=False,
    )


async def open_pool(config: SourceConfig) -> AsyncConnectionPool:
    """Open the source pool, retrying until the database is reachable.

    A pool that failed to initialize cannot be reopened, so every attempt
    builds a fresh one.
    """

    @retry(
        retry=retry_if_exception_type(psycopg.OperationalError),
        stop=stop_after_attempt(config.open_max_attempts),
        wait=wait_exponential(multiplier=1, max=30),
        reraise=True,
    )
    async def _open() -> AsyncConnectionPool:
        pool = build_pool(config)
        try:
            await pool.open(wait=True, timeout=config.connect_timeout_seconds)
        except Exception:
            await pool.close()
            logger.warning("source.pool_open_failed", host=config.host)
            raise
        return pool

    pool = await _open()
    logger.info(
        "source.pool_opened",
        host=config.host,
        database=config.database,
        max_size=config.pool_max_size,
    )
    return pool
