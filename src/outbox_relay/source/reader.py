"""Batch reader — fetches unprocessed outbox rows, oldest first."""

from __future__ import annotations

from typing import Any

import psycopg
import structlog

from outbox_relay.config.models import SourceConfig
from outbox_relay.errors import SourceUnavailable
from outbox_relay.source import queries
from outbox_relay.source.base import PendingRecord

logger = structlog.get_logger()


class BatchReader:
    """Reads up to *limit* pending rows ordered by ascending record id.

    Ordering keeps retries fair: rows left over from a failed cycle are read
    again before anything newer.
    """

    def __init__(self, pool: Any, config: SourceConfig) -> None:
        self._pool = pool
        self._config = config
        self._select = queries.select_pending(config)
        self._count = queries.count_pending(config)

    async def fetch_pending(self, limit: int) -> list[PendingRecord]:
        try:
            async with self._pool.connection() as conn:
                cur = await conn.execute(self._select, (limit,))
                rows = await cur.fetchall()
        except psycopg.Error as exc:
            raise SourceUnavailable(f"pending read failed: {exc}") from exc

        records = [
            PendingRecord.from_row(row, self._config.id_column, self._config.columns)
            for row in rows
        ]
        logger.debug("reader.fetched", count=len(records), limit=limit)
        return records

    async def count_pending(self) -> int:
        """Backlog size; used by the backlog monitor and the CLI."""
        try:
            async with self._pool.connection() as conn:
                cur = await conn.execute(self._count)
                row = await cur.fetchone()
        except psycopg.Error as exc:
            raise SourceUnavailable(f"backlog count failed: {exc}") from exc
        if row is None:
            return 0
        if isinstance(row, dict):
            return int(next(iter(row.values())))
        return int(row[0])
