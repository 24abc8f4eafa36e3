"""Size-bounded wire batch."""

from __future__ import annotations

from dataclasses import dataclass

from outbox_relay.transform.event import TransformedEvent

# Kafka v2 record batch header, and a conservative per-record envelope
# (length varints, attributes, timestamp/offset deltas, header count).
BATCH_OVERHEAD_BYTES = 61
RECORD_OVERHEAD_BYTES = 32

EVENT_ID_HEADER = "event_id"


@dataclass(slots=True, frozen=True)
class WireMessage:
    record_id: int
    event_id: str
    key: bytes | None
    value: bytes

    @property
    def headers(self) -> list[tuple[str, bytes]]:
        return [(EVENT_ID_HEADER, self.event_id.encode("utf-8"))]

    @property
    def size_bytes(self) -> int:
        header_bytes = sum(len(k) + len(v) for k, v in self.headers)
        return (
            RECORD_OVERHEAD_BYTES
            + len(self.key or b"")
            + len(self.value)
            + header_bytes
        )


class WireBatch:
    """Ordered group of serialized events that fits in one backend send.

    The byte ceiling comes from the producer; callers only see whether an
    append was accepted.
    """

    def __init__(self, max_bytes: int, max_message_bytes: int | None = None) -> None:
        if max_bytes <= BATCH_OVERHEAD_BYTES:
            msg = f"max_bytes must exceed the {BATCH_OVERHEAD_BYTES}-byte batch header"
            raise ValueError(msg)
        self._max_bytes = max_bytes
        # Per-message ceiling; an event over it never fits, even an empty batch
        self._max_message_bytes = max_message_bytes or max_bytes
        self._size = BATCH_OVERHEAD_BYTES
        self._messages: list[WireMessage] = []

    def try_append(self, event: TransformedEvent) -> bool:
        """Append *event* unless it would push the batch past its ceiling."""
        message = WireMessage(
            record_id=event.record_id,
            event_id=event.event_id,
            key=event.partition_key,
            value=event.serialize(),
        )
        size = message.size_bytes
        if size > self._max_message_bytes or self._size + size > self._max_bytes:
            return False
        self._messages.append(message)
        self._size += size
        return True

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    @property
    def max_message_bytes(self) -> int:
        return self._max_message_bytes

    @property
    def size_bytes(self) -> int:
        return self._size

    @property
    def count(self) -> int:
        return len(self._messages)

    @property
    def messages(self) -> list[WireMessage]:
        return list(self._messages)

    @property
    def record_ids(self) -> list[int]:
        return [m.record_id for m in self._messages]

    def __len__(self) -> int:
        return len(self._messages)
