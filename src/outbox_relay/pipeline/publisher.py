"""Batch publisher — greedy size-bounded packing with flush on overflow."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

import structlog

from outbox_relay.errors import PublishError
from outbox_relay.streaming.base import StreamProducer
from outbox_relay.streaming.batch import WireBatch
from outbox_relay.transform.event import TransformedEvent

logger = structlog.get_logger()


@dataclass
class PublishResult:
    sent_count: int = 0
    batches: int = 0
    skipped_event_ids: list[str] = field(default_factory=list)
    # Record ids from batches the stream accepted, in send order
    published_record_ids: list[int] = field(default_factory=list)


class BatchPublisher:
    """Packs events into as few wire batches as the byte ceiling allows.

    An event that does not fit the open batch triggers a flush and one retry
    in a fresh batch. If it still does not fit, or it is over the producer's
    per-message limit, it never will, so it is reported as skipped and not
    retried. A failed flush stops publishing and
    raises PublishError with the result of the batches sent before it.
    """

    def __init__(self, producer: StreamProducer) -> None:
        self._producer = producer

    async def publish(self, events: Iterable[TransformedEvent]) -> PublishResult:
        result = PublishResult()
        batch = self._producer.create_batch()

        for event in events:
            if batch.try_append(event):
                continue
            if batch.count:
                await self._flush(batch, result)
                batch = self._producer.create_batch()
                if batch.try_append(event):
                    continue
            logger.error(
                "publisher.event_too_large",
                record_id=event.record_id,
                event_id=event.event_id,
                max_bytes=batch.max_bytes,
                max_message_bytes=batch.max_message_bytes,
            )
            result.skipped_event_ids.append(event.event_id)

        if batch.count:
            await self._flush(batch, result)
        return result

    async def _flush(self, batch: WireBatch, result: PublishResult) -> None:
        try:
            await self._producer.send_batch(batch)
        except PublishError as exc:
            exc.partial = result
            raise
        except Exception as exc:
            raise PublishError(f"batch send failed: {exc}", partial=result) from exc
        result.sent_count += batch.count
        result.batches += 1
        result.published_record_ids.extend(batch.record_ids)
