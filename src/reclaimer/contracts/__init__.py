"""Shared contracts: types, protocols, and errors crossing module seams."""

from reclaimer.contracts.backends import (
    CatalogStore,
    ContentAddressedStore,
    ObjectStore,
    PrefixDeleteResult,
)
from reclaimer.contracts.enums import (
    ExecutorPhase,
    FailureKind,
    RecordStatus,
    RunStatus,
    StorageKind,
)
from reclaimer.contracts.errors import (
    BackendError,
    BackendUnavailableError,
    CatalogError,
    CatalogQueryTimeoutError,
    ConfirmationRequiredError,
    InvalidStatusTransitionError,
    PermanentBackendError,
    PermanentItemError,
    ReclaimerError,
    RecordNotFoundError,
    TransientBackendError,
)
from reclaimer.contracts.events import PhaseChanged, ProgressEvent, RecordError, RunSummary
from reclaimer.contracts.policy import PRESETS, RetentionPolicy, get_preset
from reclaimer.contracts.records import Classification, CleanupMeta, ContentRecord
from reclaimer.contracts.results import PreviewReport, PreviewSample, PurgeResult, ReconcileResult

__all__ = [
    "PRESETS",
    "BackendError",
    "BackendUnavailableError",
    "CatalogError",
    "CatalogQueryTimeoutError",
    "CatalogStore",
    "Classification",
    "CleanupMeta",
    "ConfirmationRequiredError",
    "ContentAddressedStore",
    "ContentRecord",
    "ExecutorPhase",
    "FailureKind",
    "InvalidStatusTransitionError",
    "ObjectStore",
    "PermanentBackendError",
    "PermanentItemError",
    "PhaseChanged",
    "PrefixDeleteResult",
    "PreviewReport",
    "PreviewSample",
    "ProgressEvent",
    "PurgeResult",
    "ReclaimerError",
    "ReconcileResult",
    "RecordError",
    "RecordNotFoundError",
    "RecordStatus",
    "RetentionPolicy",
    "RunStatus",
    "RunSummary",
    "StorageKind",
    "TransientBackendError",
    "get_preset",
]
