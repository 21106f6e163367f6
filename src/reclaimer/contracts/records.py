# src/reclaimer/contracts/records.py
"""Catalog record types.

ContentRecord is the unit of work. Records are created and mutated by the
upstream ingestion pipeline; the retention engine only stamps CleanupMeta
and, unless it kept some renditions, moves status to DELETED.
"""

from dataclasses import dataclass, field
from datetime import datetime

from reclaimer.contracts.enums import RecordStatus, StorageKind


@dataclass(frozen=True, slots=True)
class CleanupMeta:
    """Stamp written once per logical cleanup pass.

    Present on a record iff the engine has processed it at least once.

    Attributes:
        cleaned_at: When the record was marked cleaned (UTC)
        reason: Human-readable summary of the policy and original status
        backend: Backend classification at the time of cleanup
        original_status: Status the record had before it was retired
        kept_resolutions: Renditions a partial pass left in place; empty
            when the record was fully retired
    """

    cleaned_at: datetime
    reason: str
    backend: StorageKind
    original_status: RecordStatus
    kept_resolutions: tuple[str, ...] = ()

    @property
    def is_partial(self) -> bool:
        return bool(self.kept_resolutions)


@dataclass(frozen=True, slots=True)
class ContentRecord:
    """A catalog entry pointing at stored content.

    size_bytes and view_count are best-effort: None is valid and projections
    treat it as zero.
    """

    record_id: str
    owner: str
    created_at: datetime
    status: RecordStatus
    size_bytes: int | None = None
    view_count: int | None = None
    storage_locator: str | None = None
    original_locator: str | None = None
    permlink: str | None = None
    title: str | None = None
    cleanup: CleanupMeta | None = None

    @property
    def is_cleaned(self) -> bool:
        return self.cleanup is not None

    @property
    def attributed_bytes(self) -> int:
        return self.size_bytes or 0

    def age_days(self, as_of: datetime) -> int:
        """Whole days between creation and as_of (never negative)."""
        return max(0, (as_of - self.created_at).days)


@dataclass(frozen=True, slots=True)
class Classification:
    """Backend kind of a record plus the concrete locators to act on.

    For CONTENT_ADDRESSED only content_hash is set. For OBJECT_STORE, files
    and prefixes hold every key the record owns. UNKNOWN carries nothing.

    has_locator distinguishes an orphaned record (no locator at all, so
    nothing to delete) from one whose locator could not be classified.
    """

    kind: StorageKind
    has_locator: bool
    content_hash: str | None = None
    files: tuple[str, ...] = field(default_factory=tuple)
    prefixes: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_orphaned(self) -> bool:
        return self.kind is StorageKind.UNKNOWN and not self.has_locator

    @property
    def is_unclassifiable(self) -> bool:
        return self.kind is StorageKind.UNKNOWN and self.has_locator
