"""Error taxonomy of the dispatch pipeline.

Each error carries the scope at which the pipeline recovers from it:

- ``TransformError``   record-scoped: skip the record, keep the cycle going.
- ``SourceUnavailable`` cycle-scoped: abort the cycle, mark nothing.
- ``PublishError``     cycle-scoped: stop sending; batches already accepted
  in this cycle are still committed.
- ``CommitError``      chunk-scoped: earlier chunks stay committed, the
  failing chunk and the rest wait for the next tick.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from outbox_relay.pipeline.publisher import PublishResult


class RelayError(Exception):
    """Base class for all dispatch pipeline errors."""


class SourceUnavailable(RelayError):
    """The source store could not be reached or the query failed."""


class TransformError(RelayError):
    """One record could not be turned into an event."""

    def __init__(self, record_id: int, reason: str) -> None:
        super().__init__(f"record {record_id}: {reason}")
        self.record_id = record_id
        self.reason = reason


class PublishError(RelayError):
    """The event stream rejected a batch or was unreachable during flush.

    ``partial`` holds what was accepted by the stream before the failure,
    when the error is raised by the batch publisher.
    """

    def __init__(self, message: str, *, partial: PublishResult | None = None) -> None:
        super().__init__(message)
        self.partial = partial


class CommitError(RelayError):
    """A mark-processed statement failed."""

    def __init__(self, message: str, *, marked: int = 0) -> None:
        super().__init__(message)
        self.marked = marked
