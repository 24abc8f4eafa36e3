"""Publish-ready telemetry event."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

# Field name → key on the wire. Downstream consumers read these names.
WIRE_NAMES: dict[str, str] = {
    "record_id": "maindataID",
    "device_id": "deviceID",
    "operator": "OperadorGps",
    "imei": "imei",
    "event_time": "dateTime",
    "inserted_at": "insertDateTime",
    "bat": "bat",
    "battery": "battery",
    "latitude": "latitude",
    "longitude": "longitude",
    "speed": "speed",
    "lock_status": "lock_status",
    "ignition_status": "ignition_status",
    "event_id": "eventId",
    "captured_at": "_sentAtUtc",
}


@dataclass(slots=True, frozen=True)
class TransformedEvent:
    """One outbox record ready for the stream.

    ``event_id`` is the idempotency key downstream consumers deduplicate on;
    ``captured_at`` is informational and not part of it.
    """

    record_id: int
    event_id: str
    captured_at: str
    device_id: str | None = None
    imei: str | None = None
    operator: str | None = None
    event_time: str | None = None
    inserted_at: str | None = None
    bat: int | float | None = None
    battery: int | float | None = None
    latitude: int | float | None = None
    longitude: int | float | None = None
    speed: int | float | None = None
    lock_status: int | None = None
    ignition_status: int | None = None

    @property
    def partition_key(self) -> bytes | None:
        """Per-device key so one device's events keep their order."""
        device = self.device_id or self.imei
        return device.encode("utf-8") if device else None

    def to_payload(self) -> dict[str, Any]:
        return {wire: getattr(self, name) for name, wire in WIRE_NAMES.items()}

    def serialize(self) -> bytes:
        return json.dumps(
            self.to_payload(), separators=(",", ":"), default=str
        ).encode("utf-8")
