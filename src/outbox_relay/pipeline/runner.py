"""Relay orchestrator — wires the dispatch pipeline and owns its lifecycle."""

from __future__ import annotations

import asyncio
import signal
from typing import Any

import structlog

from outbox_relay.config.models import RelayConfig
from outbox_relay.observability.http_health import HealthServer
from outbox_relay.observability.metrics import BacklogMonitor
from outbox_relay.pipeline.cycle import CycleResult, DispatchCycle
from outbox_relay.pipeline.publisher import BatchPublisher
from outbox_relay.pipeline.scheduler import TickScheduler
from outbox_relay.source.marker import CommitMarker
from outbox_relay.source.pool import open_pool
from outbox_relay.source.reader import BatchReader
from outbox_relay.streaming.base import StreamProducer
from outbox_relay.streaming.producer import KafkaStreamProducer
from outbox_relay.transform.transformer import RecordTransformer

logger = structlog.get_logger()


def build_cycle(config: RelayConfig, pool: Any, producer: StreamProducer) -> DispatchCycle:
    """Assemble reader → transformer → publisher → marker from config."""
    dispatch = config.dispatch
    return DispatchCycle(
        reader=BatchReader(pool, config.source),
        transformer=RecordTransformer(
            policy=dispatch.missing_field_policy,
            source_timezone=dispatch.source_timezone,
        ),
        publisher=BatchPublisher(producer),
        marker=CommitMarker(pool, config.source, dispatch.update_chunk_size),
        read_limit=dispatch.read_limit,
        log_sample_event=dispatch.log_sample_event,
    )


class Relay:
    """Runs the outbox dispatch pipeline until told to stop.

    Startup: source pool → stream producer → liveness server → backlog
    monitor → scheduler. Shutdown reverses it, and only releases the pool and
    producer after the in-flight cycle has finished.
    """

    def __init__(
        self,
        config: RelayConfig,
        *,
        pool: Any = None,
        producer: StreamProducer | None = None,
        install_signal_handlers: bool = True,
    ) -> None:
        self._config = config
        self._pool = pool
        self._producer = producer
        self._install_signals = install_signal_handlers
        self._cycle: DispatchCycle | None = None
        self._scheduler: TickScheduler | None = None
        self._health_server: HealthServer | None = None
        self._backlog_monitor: BacklogMonitor | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stop_event: asyncio.Event | None = None
        self._previous_handlers: dict[int, Any] = {}

    def start(self) -> None:
        """Start the relay (blocking)."""
        asyncio.run(self.run())

    async def _open(self) -> DispatchCycle:
        if self._pool is None:
            self._pool = await open_pool(self._config.source)
        if self._producer is None:
            self._producer = KafkaStreamProducer(self._config.stream)
        self._cycle = build_cycle(self._config, self._pool, self._producer)
        return self._cycle

    async def run(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()
        try:
            cycle = await self._open()

            if self._config.health_enabled:
                self._health_server = HealthServer(
                    port=self._config.health_port, status_provider=self.status
                )
                await self._health_server.start()

            interval = self._config.backlog_monitor_interval_seconds
            if interval > 0:
                reader = BatchReader(self._pool, self._config.source)
                self._backlog_monitor = BacklogMonitor(reader.count_pending, interval)
                await self._backlog_monitor.start()

            self._scheduler = TickScheduler(
                cycle.run,
                self._config.dispatch.interval_seconds,
                run_on_start=self._config.dispatch.run_on_start,
            )
            if self._install_signals:
                self._install_signal_handlers()
            await self._scheduler.start()
            logger.info(
                "relay.started",
                table=self._config.source.table,
                topic=self._config.stream.topic,
                interval_seconds=self._config.dispatch.interval_seconds,
            )
            await self._stop_event.wait()
        finally:
            try:
                await self._shutdown()
            finally:
                self._restore_signal_handlers()

    async def run_once(self) -> CycleResult:
        """Open resources, run exactly one cycle, release resources."""
        try:
            cycle = await self._open()
            return await cycle.run()
        finally:
            await self._release()

    def stop(self) -> None:
        """Signal the relay to stop. Safe to call from a signal handler."""
        if self._cycle is not None:
            self._cycle.request_stop()
        if self._loop is not None and self._stop_event is not None:
            self._loop.call_soon_threadsafe(self._stop_event.set)

    def _install_signal_handlers(self) -> None:
        def _shutdown(signum: int, frame: Any) -> None:
            logger.info("relay.shutdown_signal", signal=signum)
            self.stop()

        for signum in (signal.SIGINT, signal.SIGTERM):
            self._previous_handlers[signum] = signal.signal(signum, _shutdown)

    def _restore_signal_handlers(self) -> None:
        while self._previous_handlers:
            signum, handler = self._previous_handlers.popitem()
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)

    async def _shutdown(self) -> None:
        """Stop the timer, let the current cycle quiesce, then release resources."""
        if self._scheduler is not None:
            await self._scheduler.stop()
        if self._backlog_monitor is not None:
            await self._backlog_monitor.stop()
        if self._health_server is not None:
            await self._health_server.stop()
        await self._release()
        logger.info("relay.stopped")

    async def _release(self) -> None:
        if self._producer is not None:
            try:
                await self._producer.close()
            except Exception as exc:
                logger.error("relay.producer_close_error", error=str(exc))
            self._producer = None
        if self._pool is not None:
            try:
                await self._pool.close()
            except Exception as exc:
                logger.error("relay.pool_close_error", error=str(exc))
            self._pool = None

    def status(self) -> dict[str, Any]:
        """Snapshot for the ``/status`` endpoint."""
        scheduler: dict[str, Any] = {}
        last_cycle = None
        if self._scheduler is not None:
            scheduler = self._scheduler.stats
            if isinstance(self._scheduler.last_result, CycleResult):
                last_cycle = self._scheduler.last_result.as_dict()
        return {
            "scheduler": scheduler,
            "last_cycle": last_cycle,
            "pending": self._backlog_monitor.latest if self._backlog_monitor else None,
        }
