# src/reclaimer/core/catalog/store.py
"""SqlCatalogStore: CatalogStore implementation over SQLAlchemy Core.

Selection queries run under the catalog's time bound; single-record reads
and writes use a plain transaction. The store never deletes rows: retiring
a record means stamping cleanup metadata and, for a full pass, moving it to
DELETED in the same UPDATE.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import ColumnElement, and_, func, insert, or_, select, update
from sqlalchemy.engine import Row

from reclaimer.contracts.enums import RecordStatus, StorageKind
from reclaimer.contracts.errors import InvalidStatusTransitionError, RecordNotFoundError
from reclaimer.contracts.policy import RetentionPolicy
from reclaimer.contracts.records import CleanupMeta, ContentRecord
from reclaimer.core.catalog.database import CatalogDB
from reclaimer.core.catalog.schema import content_records_table
from reclaimer.core.config import ClassifierRules
from reclaimer.core.logging import get_logger

logger = get_logger(__name__)

# Window for CleanupStats.recent
RECENT_CLEANUP_DAYS = 7


def _now() -> datetime:
    return datetime.now(UTC)


def _to_utc(value: datetime) -> datetime:
    """Normalize to aware UTC; SQLite hands back naive values."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _join(resolutions: tuple[str, ...]) -> str | None:
    return ",".join(resolutions) or None


def _split(joined: str | None) -> tuple[str, ...]:
    return tuple(r for r in (joined or "").split(",") if r)


@dataclass(frozen=True)
class CleanupStats:
    """What the engine has retired so far, for the stats command."""

    total_cleaned: int
    manually_deleted: int
    recent: int
    by_reason: dict[str, int] = field(default_factory=dict)
    by_backend: dict[StorageKind, int] = field(default_factory=dict)
    partial: int = 0


class SqlCatalogStore:
    """Catalog access for the selector, the executor and the stats command.

    Example:
        db = CatalogDB.from_url("sqlite:///./catalog.db")
        store = SqlCatalogStore(db)
        candidates = store.query(PRESETS["failed-encodings"], limit=100)
    """

    def __init__(
        self,
        db: CatalogDB,
        *,
        rules: ClassifierRules | None = None,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        """Initialize with database connection.

        Args:
            db: Catalog database
            rules: Classifier rules; their null tokens drive the orphaned filter
                so SQL selection agrees with StorageClassifier.is_absent
            clock: Source of "now" for age predicates and updated_at stamps
        """
        self._db = db
        self._null_tokens = (rules or ClassifierRules()).null_tokens
        self._clock = clock

    # -- reads ----------------------------------------------------------------

    def query(
        self,
        policy: RetentionPolicy,
        limit: int,
        *,
        offset: int = 0,
        as_of: datetime | None = None,
    ) -> list[ContentRecord]:
        """Return records matching the policy, oldest first.

        Backend-kind filtering is not applied here.

        Raises:
            CatalogQueryTimeoutError: The query ran past the time bound
        """
        t = content_records_table
        stmt = (
            select(t)
            .where(and_(*self._conditions(policy, as_of or self._clock())))
            .order_by(t.c.created_at.asc(), t.c.record_id.asc())
            .limit(limit)
            .offset(offset)
        )
        with self._db.bounded_connection() as conn:
            rows = conn.execute(stmt).fetchall()
        return [self._row_to_record(row) for row in rows]

    def count(self, policy: RetentionPolicy, *, as_of: datetime | None = None) -> int:
        """Number of records matching the policy, ignoring limit."""
        t = content_records_table
        stmt = select(func.count()).select_from(t).where(and_(*self._conditions(policy, as_of or self._clock())))
        with self._db.bounded_connection() as conn:
            return int(conn.execute(stmt).scalar_one())

    def get_by_id(self, record_id: str) -> ContentRecord | None:
        t = content_records_table
        with self._db.connection() as conn:
            row = conn.execute(select(t).where(t.c.record_id == record_id)).fetchone()
        return None if row is None else self._row_to_record(row)

    def status_stats(self) -> dict[RecordStatus, int]:
        """Record count per status (statuses with no records are omitted)."""
        t = content_records_table
        stmt = select(t.c.status, func.count()).group_by(t.c.status)
        with self._db.bounded_connection() as conn:
            rows = conn.execute(stmt).fetchall()
        return {RecordStatus(status): int(n) for status, n in rows}

    def cleanup_stats(self, as_of: datetime | None = None) -> CleanupStats:
        """Totals over records carrying cleanup metadata."""
        t = content_records_table
        cleaned = t.c.cleaned_at.is_not(None)
        recent_cutoff = _to_utc(as_of or self._clock()) - timedelta(days=RECENT_CLEANUP_DAYS)

        with self._db.bounded_connection() as conn:
            total = int(conn.execute(select(func.count()).select_from(t).where(cleaned)).scalar_one())
            manual = int(
                conn.execute(select(func.count()).select_from(t).where(cleaned, t.c.was_manually_deleted.is_(True))).scalar_one()
            )
            recent = int(conn.execute(select(func.count()).select_from(t).where(t.c.cleaned_at >= recent_cutoff)).scalar_one())
            partial = int(conn.execute(select(func.count()).select_from(t).where(cleaned, t.c.kept_resolutions.is_not(None))).scalar_one())
            by_reason = conn.execute(select(t.c.cleanup_reason, func.count()).where(cleaned).group_by(t.c.cleanup_reason)).fetchall()
            by_backend = conn.execute(select(t.c.cleanup_backend, func.count()).where(cleaned).group_by(t.c.cleanup_backend)).fetchall()

        return CleanupStats(
            total_cleaned=total,
            manually_deleted=manual,
            recent=recent,
            by_reason={reason or "": int(n) for reason, n in by_reason},
            by_backend={StorageKind(backend or StorageKind.UNKNOWN): int(n) for backend, n in by_backend},
            partial=partial,
        )

    # -- writes ---------------------------------------------------------------

    def add(self, record: ContentRecord) -> None:
        """Insert a record (used by ingestion tooling and tests)."""
        self.add_many([record])

    def add_many(self, records: Iterable[ContentRecord]) -> None:
        values = [self._record_to_values(r) for r in records]
        if not values:
            return
        with self._db.connection() as conn:
            conn.execute(insert(content_records_table), values)

    def mark_cleaned(self, record_id: str, meta: CleanupMeta) -> None:
        """Stamp cleanup metadata on a record.

        Raises:
            RecordNotFoundError: No record with that id
        """
        t = content_records_table
        stmt = update(t).where(t.c.record_id == record_id).values(**self._cleanup_values(meta))
        with self._db.connection() as conn:
            if conn.execute(stmt).rowcount == 0:
                raise RecordNotFoundError(record_id)
        logger.debug("Record marked cleaned", record_id=record_id, backend=meta.backend.value)

    def retire(
        self,
        record_id: str,
        meta: CleanupMeta,
        *,
        expected: CleanupMeta | None = None,
        status: RecordStatus | None = RecordStatus.DELETED,
    ) -> bool:
        """Stamp cleanup metadata and move the status in one UPDATE.

        The row only changes while it still carries the cleanup stamp the
        caller selected it with (none by default), so of two runs racing on
        one record exactly one retires it. A failed call leaves the record
        untouched and selectable.

        Args:
            record_id: Record to retire
            meta: Cleanup stamp to write
            expected: Stamp the record carried when it was selected
            status: New status, or None to leave it (partial deletion)

        Returns:
            True if this call retired the record; False if it is gone or
            another run stamped it first
        """
        t = content_records_table
        values = self._cleanup_values(meta)
        if status is not None:
            values["status"] = status.value
        guard = t.c.cleaned_at.is_(None) if expected is None else t.c.cleaned_at == _to_utc(expected.cleaned_at)
        stmt = update(t).where(t.c.record_id == record_id, guard).values(**values)
        with self._db.connection() as conn:
            retired = conn.execute(stmt).rowcount == 1
        if retired:
            logger.debug("Record retired", record_id=record_id, backend=meta.backend.value, status=status.value if status else None)
        return retired

    def set_status(self, record_id: str, status: RecordStatus) -> None:
        """Move a record to a new status.

        Raises:
            RecordNotFoundError: No record with that id
            InvalidStatusTransitionError: The record is DELETED and status is not
        """
        t = content_records_table
        with self._db.connection() as conn:
            current = conn.execute(select(t.c.status).where(t.c.record_id == record_id)).scalar_one_or_none()
            if current is None:
                raise RecordNotFoundError(record_id)
            current_status = RecordStatus(current)
            if current_status is RecordStatus.DELETED and status is not RecordStatus.DELETED:
                raise InvalidStatusTransitionError(record_id, current_status, status)
            conn.execute(update(t).where(t.c.record_id == record_id).values(status=status.value, updated_at=_to_utc(self._clock())))

    # -- helpers --------------------------------------------------------------

    def _cleanup_values(self, meta: CleanupMeta) -> dict[str, Any]:
        return {
            "cleaned_at": _to_utc(meta.cleaned_at),
            "cleanup_reason": meta.reason,
            "cleanup_backend": meta.backend.value,
            "original_status": meta.original_status.value,
            "kept_resolutions": _join(meta.kept_resolutions),
            "was_manually_deleted": meta.original_status is RecordStatus.DELETED,
            "updated_at": _to_utc(self._clock()),
        }

    def _absent(self, column: Any) -> ColumnElement[bool]:
        return or_(column.is_(None), func.trim(column) == "", func.trim(column).in_(sorted(self._null_tokens)))

    def _conditions(self, policy: RetentionPolicy, as_of: datetime) -> list[ColumnElement[bool]]:
        t = content_records_table
        conditions: list[ColumnElement[bool]] = []
        if policy.owner_in:
            conditions.append(t.c.owner.in_(sorted(policy.owner_in)))
        if policy.status_in:
            conditions.append(t.c.status.in_(sorted(s.value for s in policy.status_in)))
        if policy.min_age_days is not None:
            conditions.append(t.c.created_at <= _to_utc(as_of) - timedelta(days=policy.min_age_days))
        # Unknown view counts count as zero
        if policy.max_views is not None:
            conditions.append(func.coalesce(t.c.view_count, 0) < policy.max_views)
        if policy.min_views is not None:
            conditions.append(func.coalesce(t.c.view_count, 0) >= policy.min_views)
        if policy.orphaned_only:
            conditions.append(self._absent(t.c.storage_locator))
            conditions.append(self._absent(t.c.original_locator))
        if policy.exclude_already_cleaned:
            conditions.append(t.c.cleaned_at.is_(None))
        return conditions

    @staticmethod
    def _row_to_record(row: Row[Any]) -> ContentRecord:
        cleanup = None
        if row.cleaned_at is not None:
            cleanup = CleanupMeta(
                cleaned_at=_to_utc(row.cleaned_at),
                reason=row.cleanup_reason or "",
                backend=StorageKind(row.cleanup_backend or StorageKind.UNKNOWN),
                original_status=RecordStatus(row.original_status or row.status),
                kept_resolutions=_split(row.kept_resolutions),
            )
        return ContentRecord(
            record_id=row.record_id,
            owner=row.owner,
            created_at=_to_utc(row.created_at),
            status=RecordStatus(row.status),
            size_bytes=row.size_bytes,
            view_count=row.view_count,
            storage_locator=row.storage_locator,
            original_locator=row.original_locator,
            permlink=row.permlink,
            title=row.title,
            cleanup=cleanup,
        )

    @staticmethod
    def _record_to_values(record: ContentRecord) -> dict[str, Any]:
        meta = record.cleanup
        return {
            "record_id": record.record_id,
            "owner": record.owner,
            "title": record.title,
            "created_at": _to_utc(record.created_at),
            "size_bytes": record.size_bytes,
            "view_count": record.view_count,
            "status": record.status.value,
            "storage_locator": record.storage_locator,
            "original_locator": record.original_locator,
            "permlink": record.permlink,
            "cleaned_at": _to_utc(meta.cleaned_at) if meta else None,
            "cleanup_reason": meta.reason if meta else None,
            "cleanup_backend": meta.backend.value if meta else None,
            "original_status": meta.original_status.value if meta else None,
            "kept_resolutions": _join(meta.kept_resolutions) if meta else None,
            "was_manually_deleted": bool(meta and meta.original_status is RecordStatus.DELETED),
            "updated_at": None,
        }
