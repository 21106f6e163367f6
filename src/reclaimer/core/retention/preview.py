# src/reclaimer/core/retention/preview.py
"""Dry-run analysis of a retention policy.

The analyzer is never handed a backend adapter or a catalog writer, so a
preview cannot mutate anything. It runs the same selector, classifier and
locator ledger as the executor; with no state change in between, its
numbers are what an execution would report.
"""

from collections import Counter
from collections.abc import Callable
from datetime import UTC, datetime
from uuid import uuid4

from reclaimer.contracts.enums import ExecutorPhase, RecordStatus, StorageKind
from reclaimer.contracts.events import PhaseChanged
from reclaimer.contracts.policy import RetentionPolicy
from reclaimer.contracts.results import PreviewReport, PreviewSample
from reclaimer.core.classifier import StorageClassifier
from reclaimer.core.events import EventBusProtocol, NullEventBus
from reclaimer.core.logging import get_logger
from reclaimer.core.retention.ledger import LocatorLedger
from reclaimer.core.selector import CriteriaSelector

logger = get_logger(__name__)


def _now() -> datetime:
    return datetime.now(UTC)


class PreviewAnalyzer:
    """Forecasts what RetentionExecutor.execute would do for a policy."""

    def __init__(
        self,
        selector: CriteriaSelector,
        classifier: StorageClassifier,
        *,
        sample_size: int = 10,
        event_bus: EventBusProtocol | None = None,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self._selector = selector
        self._classifier = classifier
        self._sample_size = sample_size
        self._events = event_bus or NullEventBus()
        self._clock = clock

    def analyze(self, policy: RetentionPolicy, *, as_of: datetime | None = None) -> PreviewReport:
        """Select and classify candidates without touching any backend.

        Raises:
            CatalogQueryTimeoutError: Selection ran past the catalog time bound
            ValueError: The policy keeps a resolution the classifier does not know
        """
        self._classifier.check_kept_resolutions(policy.keep_resolutions)
        reference = as_of or self._clock()
        operation_id = uuid4().hex

        self._events.emit(PhaseChanged(operation_id=operation_id, phase=ExecutorPhase.SELECTING, detail=policy.describe()))
        candidates = self._selector.select(policy, as_of=reference)
        self._events.emit(PhaseChanged(operation_id=operation_id, phase=ExecutorPhase.PREVIEWING, detail=f"{len(candidates)} candidate(s)"))

        ledger = LocatorLedger()
        by_kind: dict[StorageKind, int] = {kind: 0 for kind in StorageKind}
        by_status: Counter[RecordStatus] = Counter()
        total_bytes = 0
        reclaimable_bytes = 0
        unclassifiable = 0
        duplicate_locators = 0
        ages: list[int] = []
        samples: list[PreviewSample] = []

        for record in candidates:
            classification = self._classifier.classify(record, policy.keep_resolutions)
            by_kind[classification.kind] += 1
            by_status[record.status] += 1
            total_bytes += record.attributed_bytes
            age = record.age_days(reference)
            ages.append(age)

            # Partial runs reject anything that is not an object-store record
            rejected = classification.is_unclassifiable or (policy.is_partial and classification.kind is not StorageKind.OBJECT_STORE)
            if rejected:
                unclassifiable += 1
            else:
                reclaimable_bytes += int(record.attributed_bytes * policy.partial_reclaim_ratio) if policy.is_partial else record.attributed_bytes
                duplicate_locators += ledger.skipped_count(classification)
                ledger.record_all(classification)

            if len(samples) < self._sample_size:
                samples.append(
                    PreviewSample(
                        record_id=record.record_id,
                        owner=record.owner,
                        title=record.title,
                        status=record.status,
                        kind=classification.kind,
                        size_bytes=record.attributed_bytes,
                        age_days=age,
                        content_hash=classification.content_hash,
                        files=classification.files,
                        prefixes=classification.prefixes,
                    )
                )

        report = PreviewReport(
            policy_name=policy.name,
            total_candidates=len(candidates),
            total_bytes=total_bytes,
            reclaimable_bytes=reclaimable_bytes,
            by_kind=by_kind,
            by_status=dict(by_status),
            unclassifiable=unclassifiable,
            unique_hashes=len(ledger.hashes),
            unique_files=len(ledger.files),
            unique_prefixes=len(ledger.prefixes),
            duplicate_locators=duplicate_locators,
            oldest_age_days=max(ages) if ages else None,
            newest_age_days=min(ages) if ages else None,
            samples=tuple(samples),
        )
        logger.info(
            "Preview complete",
            policy=policy.name,
            candidates=report.total_candidates,
            total_bytes=report.total_bytes,
            reclaimable_bytes=report.reclaimable_bytes,
            unclassifiable=report.unclassifiable,
        )
        return report
