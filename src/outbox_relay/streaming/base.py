"""StreamProducer protocol — what the dispatch pipeline needs from a stream."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from outbox_relay.streaming.batch import WireBatch


@runtime_checkable
class StreamProducer(Protocol):
    """Creates size-bounded batches and sends them with acknowledgment.

    Implementations: KafkaStreamProducer.
    """

    def create_batch(self) -> WireBatch:
        """Open an empty batch sized to the backend's ceiling."""
        ...

    async def send_batch(self, batch: WireBatch) -> None:
        """Send *batch*; return once accepted, raise PublishError otherwise."""
        ...

    async def close(self) -> None:
        """Flush and release the underlying client."""
        ...
