# src/reclaimer/core/retention/executor.py
"""RetentionExecutor: the single destructive path.

One policy value drives one run:

    select -> confirm -> batches of (re-fetch, classify, dedupe, mutate, mark)

Items are processed one at a time with deliberate pauses between items
and batches; the pauses protect the storage backends and are part of the
contract, not a tuning knob. A failure on one item is recorded and the
run moves on. Failed items are never marked, so they stay selectable for
a later run.
"""

import time
from collections.abc import Callable
from datetime import UTC, datetime
from uuid import uuid4

from reclaimer.contracts.backends import CatalogStore, ContentAddressedStore, ObjectStore
from reclaimer.contracts.enums import ExecutorPhase, FailureKind, RecordStatus, RunStatus, StorageKind
from reclaimer.contracts.errors import ConfirmationRequiredError, PermanentItemError, ReclaimerError
from reclaimer.contracts.events import PhaseChanged, RecordError, RunSummary
from reclaimer.contracts.policy import RetentionPolicy
from reclaimer.contracts.records import Classification, CleanupMeta, ContentRecord
from reclaimer.contracts.results import PurgeResult
from reclaimer.core.classifier import StorageClassifier
from reclaimer.core.config import PacingSettings
from reclaimer.core.events import EventBusProtocol, NullEventBus
from reclaimer.core.logging import bind_operation, get_logger, unbind_operation
from reclaimer.core.retention.cancellation import CancellationToken
from reclaimer.core.retention.ledger import LocatorLedger
from reclaimer.core.retention.progress import ProgressReporter
from reclaimer.core.selector import CriteriaSelector

logger = get_logger(__name__)

TERMINAL_PHASES: dict[RunStatus, ExecutorPhase] = {
    RunStatus.COMPLETED: ExecutorPhase.COMPLETED,
    RunStatus.COMPLETED_WITH_ERRORS: ExecutorPhase.COMPLETED_WITH_ERRORS,
    RunStatus.CANCELLED: ExecutorPhase.CANCELLED,
    RunStatus.ABORTED: ExecutorPhase.ABORTED,
}


def _now() -> datetime:
    return datetime.now(UTC)


def cleanup_reason(policy: RetentionPolicy, original_status: RecordStatus) -> str:
    """Reason stamped on every record a run retires."""
    return f"Automated cleanup: {policy.describe()} (was {original_status.value})"


def batched(records: list[ContentRecord], batch_size: int) -> list[list[ContentRecord]]:
    return [records[i : i + batch_size] for i in range(0, len(records), batch_size)]


class RetentionExecutor:
    """Executes a retention policy against the catalog and both backends.

    Example:
        executor = RetentionExecutor(
            catalog=store,
            selector=CriteriaSelector(store, classifier),
            classifier=classifier,
            content_store=IpfsPinClient.from_settings(settings.ipfs, settings.retry),
            object_store=S3ObjectStore.from_settings(settings.s3, settings.retry),
            event_bus=bus,
        )
        result = executor.execute(PRESETS["failed-encodings"], confirmed=True)
    """

    def __init__(
        self,
        catalog: CatalogStore,
        selector: CriteriaSelector,
        classifier: StorageClassifier,
        content_store: ContentAddressedStore | None,
        object_store: ObjectStore | None,
        *,
        event_bus: EventBusProtocol | None = None,
        pacing: PacingSettings | None = None,
        max_batch_size: int = 100,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        """Initialize executor.

        Args:
            catalog: Persistent state store (re-fetch and mark cleaned)
            selector: Candidate selection
            classifier: Backend classification of re-fetched records
            content_store: Content-addressed backend (None: such records fail)
            object_store: Object-store backend (None: such records fail)
            event_bus: Receives PhaseChanged, ProgressEvent and RunSummary
            pacing: Delays between batches and after backend-touching items
            max_batch_size: Upper bound on the policy's batch_size
            sleep: Pacing sleep (tests pass a recorder)
            clock: Source of cleaned_at timestamps
        """
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be >= 1")
        self._catalog = catalog
        self._selector = selector
        self._classifier = classifier
        self._content_store = content_store
        self._object_store = object_store
        self._events = event_bus or NullEventBus()
        self._pacing = pacing or PacingSettings()
        self._max_batch_size = max_batch_size
        self._sleep = sleep
        self._clock = clock

    def execute(
        self,
        policy: RetentionPolicy,
        *,
        confirmed: bool = False,
        cancel_token: CancellationToken | None = None,
        operation_id: str | None = None,
        as_of: datetime | None = None,
    ) -> PurgeResult:
        """Run the policy to completion, cancellation, or a fatal selection error.

        Args:
            policy: Retention predicate
            confirmed: Must be exactly True; execution is never the default
            cancel_token: Pause/resume/cancel handle, checked once per item
            operation_id: Run identifier (generated if omitted)
            as_of: Reference time for age predicates

        Returns:
            PurgeResult with counters and every per-item error

        A run that raises still publishes a terminal ABORTED phase, progress
        event and summary before the exception propagates.

        Raises:
            ConfirmationRequiredError: confirmed is not True (nothing was mutated)
            CatalogQueryTimeoutError: Selection ran past the catalog time bound
            ValueError: keep_resolutions names a resolution the classifier
                does not know
        """
        op_id = operation_id or uuid4().hex
        result = PurgeResult(operation_id=op_id, policy_name=policy.name)
        started = time.perf_counter()
        reporter = ProgressReporter(self._events, op_id, total_count=0, total_batches=0)

        bind_operation(op_id, policy.name)
        try:
            self._classifier.check_kept_resolutions(policy.keep_resolutions)
            self._phase(op_id, ExecutorPhase.SELECTING, policy.describe())
            candidates = self._selector.select(policy, as_of=as_of)
            result.candidates = len(candidates)
            reporter.total_count = len(candidates)

            if not candidates:
                logger.info("No candidates, nothing to do", policy=policy.name)
                return self._finish(result, reporter, RunStatus.COMPLETED, started, detail="no candidates")

            self._phase(op_id, ExecutorPhase.CONFIRMING, f"{len(candidates)} candidate(s)")
            if confirmed is not True:
                logger.warning("Execution refused without confirmation", candidates=len(candidates))
                raise ConfirmationRequiredError(len(candidates))

            batch_size = min(policy.batch_size, self._max_batch_size)
            batches = batched(candidates, batch_size)
            reporter.total_batches = len(batches)
            self._phase(op_id, ExecutorPhase.BATCHING, f"{len(batches)} batch(es) of up to {batch_size}")

            cancelled = self._run_batches(policy, batches, reporter, result, cancel_token)

            if cancelled:
                status = RunStatus.CANCELLED
            elif result.errors:
                status = RunStatus.COMPLETED_WITH_ERRORS
            else:
                status = RunStatus.COMPLETED
            return self._finish(result, reporter, status, started)
        except Exception as e:
            # Subscribers blocked on a progress stream must still see the run end
            if not result.status.is_terminal:
                self._finish(result, reporter, RunStatus.ABORTED, started, detail=f"{type(e).__name__}: {e}")
            raise
        finally:
            unbind_operation()

    # -- batch loop -------------------------------------------------------------

    def _run_batches(
        self,
        policy: RetentionPolicy,
        batches: list[list[ContentRecord]],
        reporter: ProgressReporter,
        result: PurgeResult,
        cancel_token: CancellationToken | None,
    ) -> bool:
        """Process every batch in order. Returns True if cancelled."""
        ledger = LocatorLedger()

        for batch_number, batch in enumerate(batches, start=1):
            result.batches = batch_number
            reporter.update(processed_count=result.processed, current_batch=batch_number, errors=result.errors)
            logger.info("Batch started", batch=batch_number, total_batches=len(batches), size=len(batch))

            for record in batch:
                if cancel_token is not None and not cancel_token.checkpoint():
                    logger.warning("Run cancelled", processed=result.processed, remaining=result.candidates - result.processed)
                    return True

                touched_backend = self._process_item(record, policy, ledger, result)
                result.processed += 1
                reporter.update(processed_count=result.processed, current_batch=batch_number, errors=result.errors)

                if touched_backend and self._pacing.item_delay_seconds > 0:
                    self._sleep(self._pacing.item_delay_seconds)

            if batch_number < len(batches) and self._pacing.batch_delay_seconds > 0:
                self._sleep(self._pacing.batch_delay_seconds)

        return False

    def _process_item(self, selected: ContentRecord, policy: RetentionPolicy, ledger: LocatorLedger, result: PurgeResult) -> bool:
        """Reclaim one record. Returns True if a backend call was attempted.

        Every exception is recorded against the record and swallowed so the
        run continues.
        """
        touched_backend = False
        try:
            record = self._catalog.get_by_id(selected.record_id)
            if record is None or record.cleanup != selected.cleanup:
                # Another run (or a human) got here first
                result.claimed_skipped += 1
                logger.info("Record already handled elsewhere, skipping", record_id=selected.record_id)
                return False

            classification = self._classifier.classify(record, policy.keep_resolutions)
            result.by_kind[classification.kind] += 1

            if classification.is_unclassifiable:
                raise PermanentItemError(record.record_id, f"storage locator {record.storage_locator!r} matches no known backend")
            if policy.is_partial and classification.kind is not StorageKind.OBJECT_STORE:
                raise PermanentItemError(record.record_id, f"cannot keep renditions of a {classification.kind.value} record")

            content_hash, files, prefixes = ledger.pending(classification)
            skipped = ledger.skipped_count(classification)
            if skipped:
                result.duplicates_skipped += skipped
                logger.info("Locators already handled this run, skipping", record_id=record.record_id, skipped=skipped)

            if classification.kind is StorageKind.CONTENT_ADDRESSED and content_hash is not None:
                touched_backend = True
                self._unpin(record, content_hash, ledger, result)
            elif classification.kind is StorageKind.OBJECT_STORE and (files or prefixes):
                touched_backend = True
                self._delete_objects(record, files, prefixes, ledger, result)

            self._retire(record, classification, policy, result)
        except Exception as e:
            failure = e.failure_kind if isinstance(e, ReclaimerError) else FailureKind.PERMANENT
            result.errors.append(RecordError(record_id=selected.record_id, message=str(e), failure=failure))
            logger.error(
                "Record failed",
                record_id=selected.record_id,
                error=str(e),
                error_type=type(e).__name__,
                failure=failure.value,
            )
        return touched_backend

    # -- backend calls ------------------------------------------------------------

    def _unpin(self, record: ContentRecord, content_hash: str, ledger: LocatorLedger, result: PurgeResult) -> None:
        if self._content_store is None:
            raise PermanentItemError(record.record_id, "no content-addressed store configured")
        if not self._content_store.unpin(content_hash):
            raise PermanentItemError(record.record_id, f"unpin of {content_hash} did not succeed")
        ledger.record_hash(content_hash)
        result.unpinned += 1
        logger.info("Content unpinned", record_id=record.record_id, content_hash=content_hash)

    def _delete_objects(
        self,
        record: ContentRecord,
        files: tuple[str, ...],
        prefixes: tuple[str, ...],
        ledger: LocatorLedger,
        result: PurgeResult,
    ) -> None:
        """Delete files then prefixes; any refusal fails the item after the rest are tried."""
        if self._object_store is None:
            raise PermanentItemError(record.record_id, "no object store configured")

        refused: list[str] = []
        for key in files:
            if self._object_store.delete(key):
                ledger.record_file(key)
                result.objects_deleted += 1
            else:
                refused.append(key)

        for prefix in prefixes:
            outcome = self._object_store.delete_by_prefix(prefix)
            result.prefix_objects_deleted += outcome.deleted
            if outcome.ok:
                ledger.record_prefix(prefix)
                result.prefixes_deleted += 1
            else:
                refused.append(f"{prefix} ({outcome.errors} key(s) not deleted)")

        logger.info("Objects deleted", record_id=record.record_id, files=len(files), prefixes=len(prefixes), refused=len(refused))
        if refused:
            raise PermanentItemError(record.record_id, "object store refused: " + ", ".join(refused))

    # -- catalog writes -------------------------------------------------------------

    def _retire(self, record: ContentRecord, classification: Classification, policy: RetentionPolicy, result: PurgeResult) -> None:
        """Stamp and retire in one guarded write; losing the race is a claimed skip."""
        meta = CleanupMeta(
            cleaned_at=self._clock(),
            reason=cleanup_reason(policy, record.status),
            backend=classification.kind,
            original_status=record.status,
            kept_resolutions=policy.keep_resolutions,
        )
        new_status = None if policy.is_partial else RecordStatus.DELETED
        if not self._catalog.retire(record.record_id, meta, expected=record.cleanup, status=new_status):
            result.claimed_skipped += 1
            logger.warning("Record claimed by another run before it could be marked", record_id=record.record_id)
            return

        freed = int(record.attributed_bytes * policy.partial_reclaim_ratio) if policy.is_partial else record.attributed_bytes
        result.marked_cleaned += 1
        result.bytes_freed += freed
        if policy.is_partial:
            result.partial += 1
        if classification.is_orphaned:
            result.catalog_only += 1
        logger.info(
            "Record marked cleaned",
            record_id=record.record_id,
            backend=classification.kind.value,
            bytes_freed=freed,
            original_status=record.status.value,
            kept=",".join(policy.keep_resolutions) or None,
        )

    # -- events ---------------------------------------------------------------------

    def _phase(self, operation_id: str, phase: ExecutorPhase, detail: str | None = None) -> None:
        logger.info("Phase changed", phase=phase.value, detail=detail)
        self._events.emit(PhaseChanged(operation_id=operation_id, phase=phase, detail=detail))

    def _finish(
        self,
        result: PurgeResult,
        reporter: ProgressReporter,
        status: RunStatus,
        started: float,
        *,
        detail: str | None = None,
    ) -> PurgeResult:
        result.status = status
        result.duration_seconds = time.perf_counter() - started
        self._phase(result.operation_id, TERMINAL_PHASES[status], detail)
        reporter.finish(status, processed_count=result.processed, current_batch=result.batches, errors=result.errors)
        self._events.emit(
            RunSummary(
                operation_id=result.operation_id,
                policy_name=result.policy_name,
                status=status,
                candidates=result.candidates,
                marked_cleaned=result.marked_cleaned,
                bytes_freed=result.bytes_freed,
                duplicates_skipped=result.duplicates_skipped,
                claimed_skipped=result.claimed_skipped,
                error_count=len(result.errors),
                duration_seconds=result.duration_seconds,
            )
        )
        logger.info(
            "Retention run finished",
            status=status.value,
            candidates=result.candidates,
            processed=result.processed,
            marked_cleaned=result.marked_cleaned,
            bytes_freed=result.bytes_freed,
            errors=len(result.errors),
            duration_seconds=round(result.duration_seconds, 3),
        )
        return result
