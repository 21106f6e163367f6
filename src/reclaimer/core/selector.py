# src/reclaimer/core/selector.py
"""Criteria selector: policy -> ordered candidate records.

Everything except backend kind is pushed down to the catalog. Backend kind
depends on the classifier, so when a policy filters on it the selector
pages through the catalog and classifies client-side with the same
classifier the executor uses.
"""

from datetime import datetime

from reclaimer.contracts.backends import CatalogStore
from reclaimer.contracts.policy import RetentionPolicy
from reclaimer.contracts.records import ContentRecord
from reclaimer.core.classifier import StorageClassifier
from reclaimer.core.logging import get_logger

logger = get_logger(__name__)


class CriteriaSelector:
    """Selects candidate records for a retention policy.

    Results are oldest first (created_at, then record_id) and bounded by
    the limit. Records already carrying cleanup metadata are excluded
    unless the policy says otherwise.
    """

    def __init__(self, catalog: CatalogStore, classifier: StorageClassifier, *, max_scan: int = 10_000) -> None:
        """Initialize selector.

        Args:
            catalog: Persistent state store
            classifier: Classifier used for backend-kind filtering
            max_scan: Rows inspected at most when filtering on backend kind
        """
        self._catalog = catalog
        self._classifier = classifier
        self._max_scan = max_scan

    @property
    def classifier(self) -> StorageClassifier:
        return self._classifier

    def select(
        self,
        policy: RetentionPolicy,
        limit: int | None = None,
        *,
        as_of: datetime | None = None,
    ) -> list[ContentRecord]:
        """Return records matching the policy.

        Args:
            policy: Retention predicate
            limit: Maximum records returned (defaults to policy.limit)
            as_of: Reference time for age predicates (defaults to now)

        Raises:
            CatalogQueryTimeoutError: A catalog query ran past its time bound
        """
        bound = policy.limit if limit is None else limit
        if bound <= 0:
            return []

        if policy.backend_kind is None:
            records = self._catalog.query(policy, bound, as_of=as_of)
            logger.debug("Candidates selected", policy=policy.name, count=len(records))
            return records

        return self._select_by_kind(policy, bound, as_of)

    def _select_by_kind(self, policy: RetentionPolicy, limit: int, as_of: datetime | None) -> list[ContentRecord]:
        page_size = max(limit, 100)
        selected: list[ContentRecord] = []
        scanned = 0
        offset = 0

        while len(selected) < limit and scanned < self._max_scan:
            page = self._catalog.query(policy, min(page_size, self._max_scan - scanned), offset=offset, as_of=as_of)
            if not page:
                break
            for record in page:
                if self._classifier.kind_of(record) is policy.backend_kind:
                    selected.append(record)
                    if len(selected) == limit:
                        break
            scanned += len(page)
            offset += len(page)

        if scanned >= self._max_scan and len(selected) < limit:
            logger.warning(
                "Selector scan limit reached before limit was filled",
                policy=policy.name,
                backend_kind=policy.backend_kind,
                scanned=scanned,
                selected=len(selected),
            )
        logger.debug("Candidates selected", policy=policy.name, count=len(selected), scanned=scanned)
        return selected
