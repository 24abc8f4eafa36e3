"""Unit tests for TickScheduler."""

from __future__ import annotations

import asyncio

import pytest

from outbox_relay.pipeline.scheduler import SchedulerState, TickScheduler


class _GatedCycle:
    """Cycle that blocks until released and records peak concurrency."""

    def __init__(self) -> None:
        self.release = asyncio.Event()
        self.started = asyncio.Event()
        self.calls = 0
        self.active = 0
        self.peak = 0

    async def __call__(self) -> str:
        self.calls += 1
        self.active += 1
        self.peak = max(self.peak, self.active)
        self.started.set()
        try:
            await self.release.wait()
        finally:
            self.active -= 1
        return f"result-{self.calls}"


class TestTrigger:
    async def test_runs_cycle_and_returns_to_idle(self):
        cycle = _GatedCycle()
        cycle.release.set()
        scheduler = TickScheduler(cycle, 60)

        assert await scheduler.trigger() is True
        assert scheduler.state == SchedulerState.IDLE
        assert scheduler.last_result == "result-1"
        assert scheduler.stats == {"state": "idle", "ticks": 1, "skipped": 0}

    async def test_overlapping_trigger_is_skipped(self):
        cycle = _GatedCycle()
        scheduler = TickScheduler(cycle, 60)

        first = asyncio.create_task(scheduler.trigger())
        await cycle.started.wait()
        assert scheduler.state == SchedulerState.RUNNING
        assert await scheduler.trigger() is False

        cycle.release.set()
        assert await first is True
        assert cycle.calls == 1
        assert scheduler.stats["skipped"] == 1

    async def test_state_resets_after_crash(self):
        async def crashing() -> None:
            raise RuntimeError("boom")

        scheduler = TickScheduler(crashing, 60)
        assert await scheduler.trigger() is True
        assert scheduler.state == SchedulerState.IDLE
        # A later tick still runs
        assert await scheduler.trigger() is True
        assert scheduler.stats["ticks"] == 2

    def test_interval_must_be_positive(self):
        with pytest.raises(ValueError):
            TickScheduler(lambda: None, 0)  # type: ignore[arg-type, return-value]


class TestFire:
    async def test_fire_skips_while_inflight(self):
        cycle = _GatedCycle()
        scheduler = TickScheduler(cycle, 60)

        scheduler.fire()
        scheduler.fire()
        await cycle.started.wait()
        scheduler.fire()

        cycle.release.set()
        await scheduler.wait_idle()
        assert cycle.calls == 1
        assert scheduler.stats["skipped"] == 2


class TestTickLoop:
    async def test_run_on_start_fires_immediately(self):
        cycle = _GatedCycle()
        cycle.release.set()
        scheduler = TickScheduler(cycle, 60, run_on_start=True)
        await scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()
        assert cycle.calls == 1

    async def test_without_run_on_start_waits_one_interval(self):
        cycle = _GatedCycle()
        cycle.release.set()
        scheduler = TickScheduler(cycle, 60, run_on_start=False)
        await scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()
        assert cycle.calls == 0

    async def test_ticks_on_interval(self):
        cycle = _GatedCycle()
        cycle.release.set()
        scheduler = TickScheduler(cycle, 0.05)
        await scheduler.start()
        await asyncio.sleep(0.28)
        await scheduler.stop()
        assert 3 <= cycle.calls <= 7

    async def test_slow_cycle_never_overlaps(self):
        cycle = _GatedCycle()
        scheduler = TickScheduler(cycle, 0.02)
        await scheduler.start()
        await asyncio.sleep(0.15)
        cycle.release.set()
        await scheduler.stop()

        assert cycle.peak == 1
        assert scheduler.stats["skipped"] >= 3

    async def test_stop_waits_for_inflight_cycle(self):
        cycle = _GatedCycle()
        scheduler = TickScheduler(cycle, 60)
        await scheduler.start()
        await cycle.started.wait()

        stopper = asyncio.create_task(scheduler.stop())
        await asyncio.sleep(0.05)
        assert not stopper.done()

        cycle.release.set()
        await stopper
        assert cycle.active == 0
        assert scheduler.state == SchedulerState.IDLE

    async def test_no_ticks_after_stop(self):
        cycle = _GatedCycle()
        cycle.release.set()
        scheduler = TickScheduler(cycle, 0.02)
        await scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()
        calls = cycle.calls
        await asyncio.sleep(0.08)
        assert cycle.calls == calls
