"""Protocols for storage backends and the persistent state store.

Consolidated here so the executor, the preview analyzer, and test fakes
share one definition of each seam.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from reclaimer.contracts.enums import RecordStatus
from reclaimer.contracts.records import CleanupMeta, ContentRecord

if TYPE_CHECKING:
    from reclaimer.contracts.policy import RetentionPolicy


@dataclass(frozen=True, slots=True)
class PrefixDeleteResult:
    """Outcome of deleting every key under a prefix.

    A prefix with nothing under it is (0, 0): not a failure.
    """

    deleted: int
    errors: int

    @property
    def ok(self) -> bool:
        return self.errors == 0


@runtime_checkable
class ContentAddressedStore(Protocol):
    """Content-addressed backend where deletion means unpinning a hash.

    Unpinning is all-or-nothing per hash and idempotent: unpinning a hash
    that is not pinned succeeds.
    """

    def is_pinned(self, content_hash: str) -> bool:
        """Check whether the hash is currently pinned."""
        ...

    def unpin(self, content_hash: str) -> bool:
        """Unpin the hash.

        Returns:
            True once the hash is no longer pinned (including when it
            never was)

        Raises:
            BackendUnavailableError: Transient failures outlasted retries
            PermanentBackendError: The backend rejected the request
        """
        ...


@runtime_checkable
class ObjectStore(Protocol):
    """Hierarchical object store addressed by key or prefix."""

    def exists(self, key: str) -> bool:
        """Check whether an object exists at key."""
        ...

    def delete(self, key: str) -> bool:
        """Delete one object.

        Returns:
            True if the object is gone afterwards (missing objects count),
            False if the backend refused the delete
        """
        ...

    def delete_by_prefix(self, prefix: str) -> PrefixDeleteResult:
        """Delete every object under prefix, paging through the listing."""
        ...

    def list(self, prefix: str, max_keys: int = 1000) -> list[str]:
        """List up to max_keys keys under prefix."""
        ...


@runtime_checkable
class CatalogStore(Protocol):
    """Persistent state store holding content records."""

    def query(
        self,
        policy: "RetentionPolicy",
        limit: int,
        *,
        offset: int = 0,
        as_of: datetime | None = None,
    ) -> list[ContentRecord]:
        """Return records matching the policy, oldest first.

        Backend-kind filtering is NOT applied here; the selector does it
        with the classifier.
        """
        ...

    def get_by_id(self, record_id: str) -> ContentRecord | None:
        """Fetch the current persisted state of one record."""
        ...

    def mark_cleaned(self, record_id: str, meta: CleanupMeta) -> None:
        """Stamp cleanup metadata on a record."""
        ...

    def set_status(self, record_id: str, status: RecordStatus) -> None:
        """Move a record to a new status (never out of DELETED)."""
        ...

    def retire(
        self,
        record_id: str,
        meta: CleanupMeta,
        *,
        expected: CleanupMeta | None = None,
        status: RecordStatus | None = RecordStatus.DELETED,
    ) -> bool:
        """Stamp cleanup and move status atomically.

        Only applies while the record still carries the expected stamp
        (None meaning never cleaned). Returns False when another writer got
        there first; the record is then left as that writer left it.
        """
        ...
