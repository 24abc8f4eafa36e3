"""Unit tests for the size-bounded wire batch."""

from __future__ import annotations

import pytest

from outbox_relay.streaming.batch import (
    BATCH_OVERHEAD_BYTES,
    EVENT_ID_HEADER,
    RECORD_OVERHEAD_BYTES,
    WireBatch,
)
from outbox_relay.transform.event import TransformedEvent


def _event(record_id: int, device: str = "dev-1") -> TransformedEvent:
    return TransformedEvent(
        record_id=record_id,
        event_id=f"{device}_2024-05-01T12:00:00.000Z_{record_id}",
        captured_at="2024-05-01T13:00:00.000Z",
        device_id=device,
        event_time="2024-05-01T12:00:00.000Z",
    )


def _message_size(event: TransformedEvent) -> int:
    batch = WireBatch(10_000_000)
    assert batch.try_append(event)
    return batch.size_bytes - BATCH_OVERHEAD_BYTES


class TestWireBatch:
    def test_empty_batch(self):
        batch = WireBatch(1024)
        assert batch.count == 0
        assert len(batch) == 0
        assert batch.size_bytes == BATCH_OVERHEAD_BYTES
        assert batch.record_ids == []

    def test_ceiling_must_exceed_header(self):
        with pytest.raises(ValueError):
            WireBatch(BATCH_OVERHEAD_BYTES)

    def test_message_size_accounting(self):
        event = _event(101)
        expected = (
            RECORD_OVERHEAD_BYTES
            + len(b"dev-1")
            + len(event.serialize())
            + len(EVENT_ID_HEADER)
            + len(event.event_id.encode())
        )
        assert _message_size(event) == expected

    def test_accepts_until_ceiling(self):
        size = _message_size(_event(101))
        batch = WireBatch(BATCH_OVERHEAD_BYTES + 2 * size)
        assert batch.try_append(_event(101))
        assert batch.try_append(_event(102))
        assert not batch.try_append(_event(103))
        assert batch.record_ids == [101, 102]
        assert batch.size_bytes == batch.max_bytes

    def test_rejected_append_leaves_batch_unchanged(self):
        size = _message_size(_event(101))
        batch = WireBatch(BATCH_OVERHEAD_BYTES + size)
        assert batch.try_append(_event(101))
        before = batch.size_bytes
        assert not batch.try_append(_event(102))
        assert batch.size_bytes == before
        assert batch.count == 1

    def test_oversized_event_rejected_by_empty_batch(self):
        batch = WireBatch(512)
        assert not batch.try_append(_event(1, device="d" * 1000))
        assert batch.count == 0

    def test_message_over_per_message_limit_rejected(self):
        size = _message_size(_event(1, device="d" * 1000))
        batch = WireBatch(10_000, max_message_bytes=size - 1)
        assert not batch.try_append(_event(1, device="d" * 1000))
        assert batch.count == 0
        assert batch.try_append(_event(2))
        assert batch.max_message_bytes == size - 1

    def test_per_message_limit_defaults_to_batch_ceiling(self):
        assert WireBatch(4096).max_message_bytes == 4096

    def test_messages_keep_append_order_and_headers(self):
        batch = WireBatch(10_000)
        for rid in (103, 101, 102):
            batch.try_append(_event(rid))
        messages = batch.messages
        assert [m.record_id for m in messages] == [103, 101, 102]
        assert messages[0].key == b"dev-1"
        assert messages[0].headers == [
            (EVENT_ID_HEADER, b"dev-1_2024-05-01T12:00:00.000Z_103")
        ]

    def test_event_without_device_has_no_key(self):
        event = TransformedEvent(record_id=1, event_id="noDevice__1", captured_at="x")
        batch = WireBatch(10_000)
        batch.try_append(event)
        assert batch.messages[0].key is None
