"""One dispatch cycle: read → transform → publish → commit."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from enum import StrEnum
from typing import Any

import structlog

from outbox_relay.errors import (
    CommitError,
    PublishError,
    SourceUnavailable,
    TransformError,
)
from outbox_relay.pipeline.publisher import BatchPublisher, PublishResult
from outbox_relay.source.marker import CommitMarker
from outbox_relay.source.reader import BatchReader
from outbox_relay.transform.event import TransformedEvent
from outbox_relay.transform.transformer import RecordTransformer

logger = structlog.get_logger()


class CycleOutcome(StrEnum):
    OK = "ok"
    EMPTY = "empty"
    INTERRUPTED = "interrupted"
    SOURCE_UNAVAILABLE = "source_unavailable"
    PUBLISH_FAILED = "publish_failed"
    COMMIT_FAILED = "commit_failed"


@dataclass
class CycleResult:
    outcome: CycleOutcome = CycleOutcome.OK
    read: int = 0
    sent: int = 0
    skipped: int = 0
    failed_transform: int = 0
    marked: int = 0
    elapsed_ms: float = 0.0
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["outcome"] = self.outcome.value
        return data


class DispatchCycle:
    """Runs the four stages in order and never marks an unpublished record.

    Taxonomy errors end the cycle with an outcome instead of propagating:
    a source failure marks nothing; a publish failure still commits the
    batches the stream accepted before it; a commit failure keeps the chunks
    that made it. Anything else propagates to the scheduler.

    A stop request is honoured only before publishing starts. Once a batch may
    have reached the stream the cycle runs through the commit.
    """

    def __init__(
        self,
        reader: BatchReader,
        transformer: RecordTransformer,
        publisher: BatchPublisher,
        marker: CommitMarker,
        *,
        read_limit: int,
        log_sample_event: bool = False,
    ) -> None:
        self._reader = reader
        self._transformer = transformer
        self._publisher = publisher
        self._marker = marker
        self._read_limit = read_limit
        self._log_sample_event = log_sample_event
        self._stop_requested = False

    def request_stop(self) -> None:
        self._stop_requested = True

    async def run(self) -> CycleResult:
        started = time.monotonic()
        result = CycleResult()
        try:
            await self._run(result)
        finally:
            result.elapsed_ms = round((time.monotonic() - started) * 1000, 2)
            self._report(result)
        return result

    async def _run(self, result: CycleResult) -> None:
        try:
            records = await self._reader.fetch_pending(self._read_limit)
        except SourceUnavailable as exc:
            result.outcome = CycleOutcome.SOURCE_UNAVAILABLE
            result.error = str(exc)
            return

        result.read = len(records)
        if not records:
            result.outcome = CycleOutcome.EMPTY
            return
        if self._stop_requested:
            result.outcome = CycleOutcome.INTERRUPTED
            return

        events: list[TransformedEvent] = []
        for record in records:
            try:
                events.append(self._transformer.transform(record))
            except TransformError as exc:
                result.failed_transform += 1
                logger.warning(
                    "cycle.record_skipped",
                    record_id=exc.record_id,
                    reason=exc.reason,
                )
        if events and self._log_sample_event:
            logger.debug("cycle.sample_event", event=events[0].to_payload())
        if self._stop_requested:
            result.outcome = CycleOutcome.INTERRUPTED
            return

        try:
            published = await self._publisher.publish(events)
        except PublishError as exc:
            result.outcome = CycleOutcome.PUBLISH_FAILED
            result.error = str(exc)
            published = exc.partial or PublishResult()

        result.sent = published.sent_count
        result.skipped = len(published.skipped_event_ids)

        try:
            result.marked = await self._marker.mark_processed(
                published.published_record_ids
            )
        except CommitError as exc:
            result.marked = exc.marked
            if result.outcome == CycleOutcome.OK:
                result.outcome = CycleOutcome.COMMIT_FAILED
                result.error = str(exc)
            else:
                result.error = f"{result.error}; {exc}"

    def _report(self, result: CycleResult) -> None:
        fields = result.as_dict()
        if result.outcome in (CycleOutcome.OK, CycleOutcome.EMPTY):
            logger.info("cycle.completed", **fields)
        elif result.outcome == CycleOutcome.INTERRUPTED:
            logger.warning("cycle.interrupted", **fields)
        else:
            logger.error("cycle.aborted", **fields)
