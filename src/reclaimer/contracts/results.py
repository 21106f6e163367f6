# src/reclaimer/contracts/results.py
"""Result types returned by the preview analyzer and the executor."""

from dataclasses import dataclass, field

from reclaimer.contracts.enums import RecordStatus, RunStatus, StorageKind
from reclaimer.contracts.events import RecordError


def _empty_kind_counts() -> dict[StorageKind, int]:
    return {kind: 0 for kind in StorageKind}


@dataclass
class PurgeResult:
    """Aggregate outcome of an execution run.

    A run always finishes with a result; callers decide whether a non-empty
    errors list means overall failure (see ok).

    by_kind counts records that reached classification in this run, keyed
    by backend kind. bytes_freed is the sum of size_bytes over records
    marked cleaned in this run, not bytes measured at the backend; a
    partial run (one that keeps some resolutions) attributes only the
    policy's partial_reclaim_ratio of each size. partial counts records
    slimmed but left live.
    """

    operation_id: str
    policy_name: str
    status: RunStatus = RunStatus.RUNNING
    candidates: int = 0
    processed: int = 0
    marked_cleaned: int = 0
    unpinned: int = 0
    objects_deleted: int = 0
    prefixes_deleted: int = 0
    prefix_objects_deleted: int = 0
    catalog_only: int = 0
    duplicates_skipped: int = 0
    claimed_skipped: int = 0
    partial: int = 0
    bytes_freed: int = 0
    batches: int = 0
    by_kind: dict[StorageKind, int] = field(default_factory=_empty_kind_counts)
    errors: list[RecordError] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.errors and self.status not in (RunStatus.CANCELLED, RunStatus.ABORTED)

    @property
    def failed_record_ids(self) -> list[str]:
        return [e.record_id for e in self.errors]


@dataclass(frozen=True, slots=True)
class PreviewSample:
    """One candidate shown to a human before execution."""

    record_id: str
    owner: str
    title: str | None
    status: RecordStatus
    kind: StorageKind
    size_bytes: int
    age_days: int
    content_hash: str | None
    files: tuple[str, ...]
    prefixes: tuple[str, ...]


@dataclass(frozen=True)
class PreviewReport:
    """Read-only forecast of what an execution run with the same policy would do.

    total_bytes covers every candidate. reclaimable_bytes leaves out
    unclassifiable records, which execution rejects with a permanent
    error (for a partial policy, every record that is not on the object
    store counts as unclassifiable), and scales by partial_reclaim_ratio
    for a partial policy. With no intervening state change it equals the
    executor's bytes_freed.
    """

    policy_name: str
    total_candidates: int
    total_bytes: int
    reclaimable_bytes: int
    by_kind: dict[StorageKind, int]
    by_status: dict[RecordStatus, int]
    unclassifiable: int
    unique_hashes: int
    unique_files: int
    unique_prefixes: int
    duplicate_locators: int
    oldest_age_days: int | None
    newest_age_days: int | None
    samples: tuple[PreviewSample, ...]

    @property
    def is_empty(self) -> bool:
        return self.total_candidates == 0


@dataclass
class ReconcileResult:
    """Outcome of a reconciliation pass over object-store records.

    missing lists records whose every rendition playlist is gone from the
    object store. In a dry run nothing is marked and marked_cleaned stays 0.
    """

    operation_id: str
    policy_name: str
    applied: bool
    status: RunStatus = RunStatus.RUNNING
    checked: int = 0
    present: int = 0
    missing: list[str] = field(default_factory=list)
    missing_bytes: int = 0
    marked_cleaned: int = 0
    claimed_skipped: int = 0
    errors: list[RecordError] = field(default_factory=list)
    duration_seconds: float = 0.0
