"""Record transformer — PendingRecord → TransformedEvent.

No I/O. The only impure input is the clock used for the capture stamp, which
is injectable so tests can pin it.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from datetime import UTC, datetime, tzinfo
from decimal import Decimal
from typing import Any
from zoneinfo import ZoneInfo

from outbox_relay.config.models import MissingFieldPolicy
from outbox_relay.errors import TransformError
from outbox_relay.source.base import PendingRecord
from outbox_relay.transform.event import TransformedEvent

NO_DEVICE = "noDevice"

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(UTC)


def format_utc(dt: datetime) -> str:
    """``2024-05-01T12:00:00.000Z``: millisecond precision, explicit UTC."""
    return dt.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def normalize_timestamp(value: Any, source_tz: tzinfo = UTC) -> str | None:
    """Normalize a temporal value to an ISO-8601 UTC string.

    Accepts datetimes (naive ones are read in *source_tz*), ISO strings and
    epoch numbers in seconds or milliseconds. Returns None for empty input and
    raises ValueError for anything unparseable.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, bool):
        msg = f"not a timestamp: {value!r}"
        raise ValueError(msg)
    elif isinstance(value, int | float | Decimal):
        n = float(value)
        if not math.isfinite(n):
            msg = f"not a timestamp: {value!r}"
            raise ValueError(msg)
        # Values past 1e12 are already milliseconds
        seconds = n / 1000 if n > 1e12 else n
        try:
            dt = datetime.fromtimestamp(seconds, UTC)
        except (OverflowError, OSError) as exc:
            msg = f"timestamp out of range: {value!r}"
            raise ValueError(msg) from exc
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        dt = datetime.fromisoformat(text)
    else:
        msg = f"not a timestamp: {value!r}"
        raise ValueError(msg)

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=source_tz)
    try:
        return format_utc(dt)
    except OverflowError as exc:
        # e.g. 9999-12-31 read in a zone west of UTC
        msg = f"timestamp out of range in UTC: {value!r}"
        raise ValueError(msg) from exc


def to_number(value: Any) -> int | float | None:
    """Coerce to a JSON number; None when the value is absent or not numeric."""
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None


def to_flag(value: Any) -> int | None:
    n = to_number(value)
    return None if n is None else int(n)


def to_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def build_event_id(device: str, event_time: str | None, record_id: int) -> str:
    """Deterministic idempotency key: ``<device>_<event_time>_<record_id>``."""
    return f"{device}_{event_time or ''}_{record_id}"


class RecordTransformer:
    """Maps outbox records to stream events.

    Required fields are the device identifier (``device_id``, falling back to
    ``imei``) and ``event_time``. With ``MissingFieldPolicy.SENTINEL`` a missing
    or malformed one is replaced by a sentinel; with ``SKIP`` the record is
    rejected with TransformError and left pending.
    """

    def __init__(
        self,
        policy: MissingFieldPolicy = MissingFieldPolicy.SENTINEL,
        source_timezone: str = "UTC",
        clock: Clock = _utc_now,
    ) -> None:
        self._policy = policy
        self._tz: tzinfo = ZoneInfo(source_timezone)
        self._clock = clock

    def transform(self, record: PendingRecord) -> TransformedEvent:
        device_id = to_text(record.device_id)
        imei = to_text(record.imei)
        device = device_id or imei
        if device is None:
            device = self._missing(record, "no device identifier", NO_DEVICE)

        try:
            event_time = normalize_timestamp(record.event_time, self._tz)
        except ValueError as exc:
            self._missing(record, f"malformed event time ({exc})", None)
            event_time = None
        if event_time is None:
            self._missing(record, "no event time", None)

        try:
            inserted_at = normalize_timestamp(record.inserted_at, self._tz)
        except ValueError:
            inserted_at = None

        return TransformedEvent(
            record_id=record.record_id,
            event_id=build_event_id(device, event_time, record.record_id),
            captured_at=format_utc(self._clock()),
            device_id=device_id,
            imei=imei,
            operator=to_text(record.operator),
            event_time=event_time,
            inserted_at=inserted_at,
            bat=to_number(record.bat),
            battery=to_number(record.battery),
            latitude=to_number(record.latitude),
            longitude=to_number(record.longitude),
            speed=to_number(record.speed),
            lock_status=to_flag(record.lock_status),
            ignition_status=to_flag(record.ignition_status),
        )

    def _missing(self, record: PendingRecord, reason: str, sentinel: Any) -> Any:
        if self._policy == MissingFieldPolicy.SKIP:
            raise TransformError(record.record_id, reason)
        return sentinel
