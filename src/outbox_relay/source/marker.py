"""Commit marker — flags published records as processed."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from typing import Any

import psycopg
import structlog

from outbox_relay.config.models import SourceConfig
from outbox_relay.errors import CommitError
from outbox_relay.source import queries

logger = structlog.get_logger()


def chunked(ids: Sequence[int], size: int) -> Iterator[list[int]]:
    """Split *ids* into consecutive lists of at most *size* items."""
    for start in range(0, len(ids), size):
        yield list(ids[start : start + size])


class CommitMarker:
    """Marks ids processed in bounded chunks, one transaction per chunk.

    Chunks keep each UPDATE under the backend's bind-parameter ceiling.
    A failing chunk stops the run: earlier chunks are already durable, the
    remaining ids stay pending and are picked up by the next cycle.
    """

    def __init__(self, pool: Any, config: SourceConfig, chunk_size: int) -> None:
        if chunk_size < 1:
            msg = "chunk_size must be at least 1"
            raise ValueError(msg)
        self._pool = pool
        self._config = config
        self._chunk_size = chunk_size

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    async def mark_processed(self, ids: Sequence[int]) -> int:
        if not ids:
            return 0

        updated = 0
        chunks = 0
        try:
            async with self._pool.connection() as conn:
                for chunk in chunked(ids, self._chunk_size):
                    stmt = queries.mark_processed(self._config, len(chunk))
                    async with conn.transaction():
                        cur = await conn.execute(stmt, chunk)
                    updated += max(cur.rowcount, 0)
                    chunks += 1
        except psycopg.Error as exc:
            logger.error(
                "marker.chunk_failed",
                chunk_index=chunks,
                marked=updated,
                error=str(exc),
            )
            raise CommitError(
                f"mark processed failed at chunk {chunks}: {exc}", marked=updated
            ) from exc

        logger.debug("marker.committed", ids=len(ids), chunks=chunks, updated=updated)
        return updated
