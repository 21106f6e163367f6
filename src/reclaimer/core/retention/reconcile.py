# src/reclaimer/core/retention/reconcile.py
"""Reconciliation of the catalog against the object store.

Object-store records sometimes outlive their files: a bucket lifecycle
rule, a manual cleanup or a failed upload leaves a live catalog entry
pointing at nothing. The reconciler checks each candidate for any
rendition playlist and, when applied, retires records with none left.
Nothing is deleted from the object store.
"""

import time
from collections.abc import Callable
from datetime import UTC, datetime
from uuid import uuid4

from reclaimer.contracts.backends import CatalogStore, ObjectStore
from reclaimer.contracts.enums import ExecutorPhase, FailureKind, RecordStatus, RunStatus, StorageKind
from reclaimer.contracts.errors import ReclaimerError
from reclaimer.contracts.events import PhaseChanged, RecordError, RunSummary
from reclaimer.contracts.policy import RetentionPolicy
from reclaimer.contracts.records import CleanupMeta, ContentRecord
from reclaimer.contracts.results import ReconcileResult
from reclaimer.core.classifier import StorageClassifier
from reclaimer.core.config import PacingSettings
from reclaimer.core.events import EventBusProtocol, NullEventBus
from reclaimer.core.logging import bind_operation, get_logger, unbind_operation
from reclaimer.core.retention.cancellation import CancellationToken
from reclaimer.core.retention.executor import TERMINAL_PHASES
from reclaimer.core.retention.progress import ProgressReporter
from reclaimer.core.selector import CriteriaSelector

logger = get_logger(__name__)

RECONCILE_REASON = "Reconciliation: renditions missing from object store"


def _now() -> datetime:
    return datetime.now(UTC)


class StorageReconciler:
    """Finds object-store records whose renditions are gone.

    A record counts as missing only when every configured resolution's
    playlist is absent. A failed existence check skips the record with an
    error; it never counts as absence.

    Example:
        reconciler = StorageReconciler(store, selector, classifier, S3ObjectStore.from_settings(...))
        report = reconciler.run(RetentionPolicy(owner_in=frozenset({"alice"})))
        if report.missing:
            reconciler.run(policy, apply=True)
    """

    def __init__(
        self,
        catalog: CatalogStore,
        selector: CriteriaSelector,
        classifier: StorageClassifier,
        object_store: ObjectStore,
        *,
        event_bus: EventBusProtocol | None = None,
        pacing: PacingSettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self._catalog = catalog
        self._selector = selector
        self._classifier = classifier
        self._object_store = object_store
        self._events = event_bus or NullEventBus()
        self._pacing = pacing or PacingSettings()
        self._sleep = sleep
        self._clock = clock

    def run(
        self,
        policy: RetentionPolicy,
        *,
        apply: bool = False,
        cancel_token: CancellationToken | None = None,
        operation_id: str | None = None,
        as_of: datetime | None = None,
    ) -> ReconcileResult:
        """Check every object-store candidate of the policy.

        Args:
            policy: Selection predicate; backend kind is forced to object_store
            apply: Retire missing records (default: report only)
            cancel_token: Pause/resume/cancel handle, checked once per record
            operation_id: Run identifier (generated if omitted)
            as_of: Reference time for age predicates

        Raises:
            ValueError: The policy keeps resolutions (partial policies only
                make sense for the executor)
            CatalogQueryTimeoutError: Selection ran past the catalog time bound
        """
        if policy.is_partial:
            raise ValueError("reconciliation does not take keep_resolutions")
        scoped = RetentionPolicy(**{**policy.model_dump(), "backend_kind": StorageKind.OBJECT_STORE})
        op_id = operation_id or uuid4().hex
        result = ReconcileResult(operation_id=op_id, policy_name=policy.name, applied=apply)
        started = time.perf_counter()
        reporter = ProgressReporter(self._events, op_id, total_count=0, total_batches=0)

        bind_operation(op_id, policy.name)
        try:
            self._phase(op_id, ExecutorPhase.SELECTING, scoped.describe())
            candidates = self._selector.select(scoped, as_of=as_of)
            batches = [candidates[i : i + scoped.batch_size] for i in range(0, len(candidates), scoped.batch_size)]
            reporter.total_count = len(candidates)
            reporter.total_batches = len(batches)
            self._phase(op_id, ExecutorPhase.BATCHING, f"{len(candidates)} candidate(s), apply={apply}")

            cancelled = False
            for batch_number, batch in enumerate(batches, start=1):
                for record in batch:
                    if cancel_token is not None and not cancel_token.checkpoint():
                        cancelled = True
                        break
                    self._check(record, apply, result)
                    result.checked += 1
                    reporter.update(processed_count=result.checked, current_batch=batch_number, errors=result.errors)
                if cancelled:
                    break
                if batch_number < len(batches) and self._pacing.batch_delay_seconds > 0:
                    self._sleep(self._pacing.batch_delay_seconds)

            if cancelled:
                status = RunStatus.CANCELLED
            elif result.errors:
                status = RunStatus.COMPLETED_WITH_ERRORS
            else:
                status = RunStatus.COMPLETED
            return self._finish(result, reporter, status, started)
        except Exception:
            if not result.status.is_terminal:
                self._finish(result, reporter, RunStatus.ABORTED, started)
            raise
        finally:
            unbind_operation()

    def _check(self, record: ContentRecord, apply: bool, result: ReconcileResult) -> None:
        permlink = (record.permlink or "").strip().strip("/")
        if not permlink or self._classifier.is_absent(permlink):
            result.errors.append(RecordError(record_id=record.record_id, message="no permlink to check renditions under"))
            logger.warning("Record has no permlink, skipping", record_id=record.record_id)
            return

        try:
            found = self._find_rendition(permlink)
        except Exception as e:
            failure = e.failure_kind if isinstance(e, ReclaimerError) else FailureKind.TRANSIENT
            result.errors.append(RecordError(record_id=record.record_id, message=str(e), failure=failure))
            logger.error("Existence check failed, skipping", record_id=record.record_id, error=str(e))
            return

        if found is not None:
            result.present += 1
            logger.debug("Renditions present", record_id=record.record_id, found=found)
            return

        result.missing.append(record.record_id)
        result.missing_bytes += record.attributed_bytes
        logger.warning("Renditions missing from object store", record_id=record.record_id, permlink=permlink, applied=apply)
        if not apply:
            return

        meta = CleanupMeta(
            cleaned_at=self._clock(),
            reason=RECONCILE_REASON,
            backend=StorageKind.OBJECT_STORE,
            original_status=record.status,
        )
        if self._catalog.retire(record.record_id, meta, expected=record.cleanup, status=RecordStatus.DELETED):
            result.marked_cleaned += 1
        else:
            result.claimed_skipped += 1

    def _find_rendition(self, permlink: str) -> str | None:
        """First resolution whose playlist exists, or None if none do.

        Raises whatever the object store raised for the first failed check,
        after trying the remaining resolutions: one reachable playlist is
        enough to call the record present.
        """
        first_error: Exception | None = None
        for res in self._classifier.rules.resolutions:
            try:
                if self._object_store.exists(f"{permlink}/{res}.m3u8"):
                    return res
            except Exception as e:
                first_error = first_error or e
        if first_error is not None:
            raise first_error
        return None

    def _phase(self, operation_id: str, phase: ExecutorPhase, detail: str | None = None) -> None:
        logger.info("Phase changed", phase=phase.value, detail=detail)
        self._events.emit(PhaseChanged(operation_id=operation_id, phase=phase, detail=detail))

    def _finish(self, result: ReconcileResult, reporter: ProgressReporter, status: RunStatus, started: float) -> ReconcileResult:
        result.status = status
        result.duration_seconds = time.perf_counter() - started
        self._phase(result.operation_id, TERMINAL_PHASES[status])
        reporter.finish(status, processed_count=result.checked, current_batch=reporter.total_batches, errors=result.errors)
        self._events.emit(
            RunSummary(
                operation_id=result.operation_id,
                policy_name=result.policy_name,
                status=status,
                candidates=reporter.total_count,
                marked_cleaned=result.marked_cleaned,
                bytes_freed=0,
                duplicates_skipped=0,
                claimed_skipped=result.claimed_skipped,
                error_count=len(result.errors),
                duration_seconds=result.duration_seconds,
            )
        )
        logger.info(
            "Reconciliation finished",
            status=status.value,
            checked=result.checked,
            present=result.present,
            missing=len(result.missing),
            marked_cleaned=result.marked_cleaned,
            errors=len(result.errors),
        )
        return result
