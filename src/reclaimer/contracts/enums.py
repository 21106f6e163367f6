"""All status codes, modes, and kinds used across subsystem boundaries.

Values are stored in the catalog and in progress events, so renaming a
member is a data migration, not a refactor.
"""

from enum import StrEnum


class RecordStatus(StrEnum):
    """Lifecycle status of a content record.

    Stored in the catalog (content_records.status). PUBLISHED is the
    "active" state. DELETED is terminal: the engine only ever moves a
    record toward it and nothing moves a record out of it.
    """

    PUBLISHED = "published"
    DRAFT = "draft"
    UPLOADED = "uploaded"
    SCHEDULED = "scheduled"
    PROCESSING = "processing"
    ENCODING_IPFS = "encoding_ipfs"
    ENCODING_FAILED = "encoding_failed"
    IPFS_PINNING_FAILED = "ipfs_pinning_failed"
    FAILED = "failed"
    PUBLISH_MANUAL = "publish_manual"
    MANUAL_REVIEW = "manual_review"
    DELETED = "deleted"

    @property
    def is_terminal(self) -> bool:
        return self is RecordStatus.DELETED


class StorageKind(StrEnum):
    """Closed three-way backend classification of a record.

    Stored in the catalog (content_records.cleanup_backend).
    """

    CONTENT_ADDRESSED = "content_addressed"
    OBJECT_STORE = "object_store"
    UNKNOWN = "unknown"


class RunStatus(StrEnum):
    """Status of a retention run as published in progress events."""

    RUNNING = "running"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    CANCELLED = "cancelled"
    # Ended before batching (refused confirmation, selection timeout)
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self is not RunStatus.RUNNING


class ExecutorPhase(StrEnum):
    """Phases of a retention run.

    selecting -> (previewing | confirming) -> batching -> terminal.
    PREVIEWING is only ever entered by the preview analyzer.
    """

    SELECTING = "selecting"
    PREVIEWING = "previewing"
    CONFIRMING = "confirming"
    BATCHING = "batching"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    CANCELLED = "cancelled"
    ABORTED = "aborted"


class FailureKind(StrEnum):
    """Why a record could not be processed.

    TRANSIENT: backend outage that outlasted the adapter's retries.
        The record stays selectable and a re-run may succeed.
    PERMANENT: malformed or unclassifiable locator, or a backend
        rejection. Re-running will fail the same way until the data changes.
    """

    TRANSIENT = "transient"
    PERMANENT = "permanent"
