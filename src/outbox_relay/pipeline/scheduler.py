"""Fixed-cadence tick scheduler with overlap prevention."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from contextlib import suppress
from enum import StrEnum
from typing import Any

import structlog

logger = structlog.get_logger()

CycleFn = Callable[[], Awaitable[Any]]


class SchedulerState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"


class TickScheduler:
    """Runs *cycle* every *interval* seconds, never two at once.

    The interval is measured from tick start to tick start on the event loop
    clock. A tick that fires while a cycle is still running is skipped, not
    queued.
    """

    def __init__(
        self,
        cycle: CycleFn,
        interval: float,
        *,
        run_on_start: bool = True,
    ) -> None:
        if interval <= 0:
            msg = "interval must be positive"
            raise ValueError(msg)
        self._cycle = cycle
        self._interval = interval
        self._run_on_start = run_on_start
        self._state = SchedulerState.IDLE
        self._timer: asyncio.Task[None] | None = None
        self._inflight: asyncio.Task[bool] | None = None
        self._ticks = 0
        self._skipped = 0
        self._last_result: Any = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def last_result(self) -> Any:
        return self._last_result

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "ticks": self._ticks,
            "skipped": self._skipped,
        }

    async def trigger(self) -> bool:
        """Run one cycle now if idle. Returns False when the tick was skipped."""
        if self._state == SchedulerState.RUNNING:
            self._skipped += 1
            logger.info("scheduler.tick_skipped", reason="cycle in progress")
            return False

        self._state = SchedulerState.RUNNING
        self._ticks += 1
        try:
            self._last_result = await self._cycle()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("scheduler.cycle_crashed")
        finally:
            self._state = SchedulerState.IDLE
        return True

    def fire(self) -> None:
        """Timer callback: start a cycle in the background unless one is running."""
        pending = self._inflight is not None and not self._inflight.done()
        if pending or self._state == SchedulerState.RUNNING:
            self._skipped += 1
            logger.info("scheduler.tick_skipped", reason="cycle in progress")
            return
        self._inflight = asyncio.create_task(self.trigger())

    async def start(self) -> None:
        if self._timer is not None:
            return
        self._timer = asyncio.create_task(self._tick_loop())
        logger.info(
            "scheduler.started",
            interval_seconds=self._interval,
            run_on_start=self._run_on_start,
        )

    async def _tick_loop(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        if not self._run_on_start:
            next_tick += self._interval
        while True:
            delay = next_tick - loop.time()
            if delay > 0:
                await asyncio.sleep(delay)
            self.fire()
            next_tick += self._interval
            # Ticks missed while the loop was blocked are dropped, not replayed
            now = loop.time()
            if next_tick <= now:
                missed = int((now - next_tick) // self._interval) + 1
                next_tick += missed * self._interval

    async def stop(self) -> None:
        """Stop the timer, then wait for the in-flight cycle to finish."""
        if self._timer is not None:
            self._timer.cancel()
            with suppress(asyncio.CancelledError):
                await self._timer
            self._timer = None
        await self.wait_idle()
        logger.info("scheduler.stopped", **self.stats)

    async def wait_idle(self) -> None:
        if self._inflight is not None and not self._inflight.done():
            await asyncio.shield(self._inflight)
        self._inflight = None
