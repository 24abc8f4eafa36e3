"""Outbox backlog metrics."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from contextlib import suppress

import structlog

logger = structlog.get_logger()

CountFn = Callable[[], Awaitable[int]]


class BacklogMonitor:
    """Periodic reporter of how many outbox rows are still pending."""

    def __init__(self, count_pending: CountFn, interval: float = 60.0) -> None:
        self._count_pending = count_pending
        self._interval = interval
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._latest: int | None = None

    async def start(self) -> None:
        self._task = asyncio.create_task(self._poll_loop())

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def sample(self) -> int | None:
        try:
            self._latest = await self._count_pending()
        except Exception as exc:
            logger.warning("outbox.backlog_check_failed", error=str(exc))
            return None
        logger.info("outbox.backlog", pending=self._latest)
        return self._latest

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self.sample()

    @property
    def latest(self) -> int | None:
        return self._latest
