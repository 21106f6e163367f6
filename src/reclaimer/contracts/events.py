# src/reclaimer/contracts/events.py
"""Observability events for retention runs.

Events are emitted by the executor onto an EventBus and consumed by
console formatters, progress streams, or nothing at all. They are frozen
so a subscriber can hold on to one without seeing it change.
"""

from dataclasses import dataclass, field
from typing import Any

from reclaimer.contracts.enums import ExecutorPhase, FailureKind, RunStatus


@dataclass(frozen=True, slots=True)
class RecordError:
    """A single record that could not be processed.

    Attributes:
        record_id: Catalog id of the failed record
        message: Error text (exception message)
        failure: Whether a re-run could plausibly succeed
    """

    record_id: str
    message: str
    failure: FailureKind = FailureKind.PERMANENT

    def to_dict(self) -> dict[str, str]:
        return {"record_id": self.record_id, "message": self.message, "failure": self.failure.value}


@dataclass(frozen=True, slots=True)
class PhaseChanged:
    """Emitted when a run moves to a new phase."""

    operation_id: str
    phase: ExecutorPhase
    detail: str | None = None


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    """Emitted after every item and at every batch boundary.

    processed_count counts items handled so far whatever their outcome
    (cleaned, skipped, or failed), so it reaches total_count on a run that
    was not cancelled.
    """

    operation_id: str
    processed_count: int
    total_count: int
    current_batch: int
    total_batches: int
    status: RunStatus
    errors: tuple[RecordError, ...] = field(default_factory=tuple)

    @property
    def fraction(self) -> float:
        if self.total_count == 0:
            return 1.0
        return self.processed_count / self.total_count

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready form used by streaming consumers."""
        return {
            "operation_id": self.operation_id,
            "processed_count": self.processed_count,
            "total_count": self.total_count,
            "current_batch": self.current_batch,
            "total_batches": self.total_batches,
            "errors": [e.to_dict() for e in self.errors],
            "status": self.status.value,
        }


@dataclass(frozen=True, slots=True)
class RunSummary:
    """Emitted once when a run reaches a terminal status."""

    operation_id: str
    policy_name: str
    status: RunStatus
    candidates: int
    marked_cleaned: int
    bytes_freed: int
    duplicates_skipped: int
    claimed_skipped: int
    error_count: int
    duration_seconds: float
