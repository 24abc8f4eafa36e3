"""Outbox row envelope.

Defines PendingRecord, the fixed typed view of one unprocessed outbox row.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any

from outbox_relay.config.models import ColumnMap


@dataclass(slots=True, frozen=True)
class PendingRecord:
    """One outbox row that has not been marked processed yet.

    Payload fields are optional: the relay forwards whatever the row holds and
    leaves validation of required fields to the transformer.
    """

    record_id: int
    device_id: str | None = None
    imei: str | None = None
    operator: str | None = None
    event_time: datetime | str | int | float | None = None
    inserted_at: datetime | str | int | float | None = None
    bat: Any = None
    battery: Any = None
    latitude: Any = None
    longitude: Any = None
    speed: Any = None
    lock_status: Any = None
    ignition_status: Any = None

    @classmethod
    def from_row(
        cls, row: Mapping[str, Any], id_column: str, columns: ColumnMap
    ) -> PendingRecord:
        """Build a record from a ``dict_row`` keyed by source column names."""
        mapping = columns.model_dump()
        payload = {
            f.name: row.get(mapping[f.name])
            for f in fields(cls)
            if f.name != "record_id"
        }
        return cls(record_id=int(row[id_column]), **payload)
