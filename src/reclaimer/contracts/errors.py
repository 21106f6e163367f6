# src/reclaimer/contracts/errors.py
"""Exception taxonomy for the retention engine.

Failure classes and how the engine treats them:

- NotFound: the object or pin is already gone. Never raised; adapters
  report success so deletion stays idempotent.
- Transient: network or backend outage. Retried by the adapter with
  bounded backoff; BackendUnavailableError surfaces once retries run out.
- Permanent: malformed locator, unclassifiable record, backend rejection.
  Recorded against the item and never retried.
- Concurrently claimed: another run already cleaned the record. Not an
  exception at all; the executor skips the item silently.
"""

from typing import Any

from reclaimer.contracts.enums import FailureKind, RecordStatus


class ReclaimerError(Exception):
    """Base class for all errors raised by this package."""

    failure_kind: FailureKind = FailureKind.PERMANENT


# =============================================================================
# Backend errors
# =============================================================================


class BackendError(ReclaimerError):
    """Raised when a storage backend call fails.

    Attributes:
        backend: Short backend name ("ipfs", "s3")
        locator: Hash, key, or prefix the call addressed
    """

    def __init__(self, message: str, *, backend: str, locator: str | None = None) -> None:
        self.backend = backend
        self.locator = locator
        super().__init__(message)


class TransientBackendError(BackendError):
    """A failure that may succeed if retried (timeout, 5xx, throttling)."""

    failure_kind = FailureKind.TRANSIENT


class PermanentBackendError(BackendError):
    """A failure that will not succeed on retry (4xx, invalid request)."""


class BackendUnavailableError(BackendError):
    """Raised when transient failures outlast the adapter's retry budget.

    The record stays unmarked, so it remains selectable for a later run.
    """

    failure_kind = FailureKind.TRANSIENT

    def __init__(self, *, backend: str, locator: str | None, attempts: int, last_error: BaseException) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{backend} unavailable after {attempts} attempt(s) for {locator!r}: {last_error}",
            backend=backend,
            locator=locator,
        )


# =============================================================================
# Item errors
# =============================================================================


class PermanentItemError(ReclaimerError):
    """Raised when a record cannot be processed as stored.

    Typical cause: the storage locator is present but the classifier
    returned UNKNOWN for it, so there is no safe backend to call.
    """

    def __init__(self, record_id: str, message: str) -> None:
        self.record_id = record_id
        super().__init__(f"{record_id}: {message}")


class ConfirmationRequiredError(ReclaimerError):
    """Raised when execution is requested without explicit confirmation.

    Execution is the only destructive mode and never the default.
    """

    def __init__(self, candidate_count: int) -> None:
        self.candidate_count = candidate_count
        super().__init__(f"Refusing to purge {candidate_count} record(s) without explicit confirmation")


# =============================================================================
# Catalog errors
# =============================================================================


class CatalogError(ReclaimerError):
    """Base class for persistent state store failures."""


class RecordNotFoundError(CatalogError):
    """Raised when a write targets a record id the catalog does not hold."""

    def __init__(self, record_id: str) -> None:
        self.record_id = record_id
        super().__init__(f"Content record not found: {record_id}")


class InvalidStatusTransitionError(CatalogError):
    """Raised when a write would move a record backwards out of DELETED."""

    def __init__(self, record_id: str, current: RecordStatus, requested: RecordStatus) -> None:
        self.record_id = record_id
        self.current = current
        self.requested = requested
        super().__init__(f"Record {record_id} is {current.value}; refusing transition to {requested.value}")


class CatalogQueryTimeoutError(CatalogError):
    """Raised when a selection query exceeds the server-side time bound."""

    failure_kind = FailureKind.TRANSIENT

    def __init__(self, timeout_seconds: float, detail: Any = None) -> None:
        self.timeout_seconds = timeout_seconds
        suffix = f": {detail}" if detail else ""
        super().__init__(f"Catalog query exceeded {timeout_seconds:g}s{suffix}")
