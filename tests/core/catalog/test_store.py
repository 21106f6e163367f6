# tests/core/catalog/test_store.py
"""Tests for SqlCatalogStore."""

from datetime import timedelta

import pytest

from reclaimer.contracts import (
    CleanupMeta,
    InvalidStatusTransitionError,
    RecordNotFoundError,
    RecordStatus,
    RetentionPolicy,
    StorageKind,
)
from reclaimer.core.catalog import CatalogDB, SqlCatalogStore
from reclaimer.core.classifier import StorageClassifier
from reclaimer.core.config import ClassifierRules
from tests.fixtures.catalog import NOW, make_cleanup, make_record


def _ids(records: list) -> set[str]:
    return {r.record_id for r in records}


class TestQueryFilters:
    """Each policy field constrains the catalog query."""

    def test_owner_filter(self, catalog_store: SqlCatalogStore) -> None:
        catalog_store.add_many([make_record("a", owner="alice"), make_record("b", owner="bob"), make_record("c", owner="carol")])

        records = catalog_store.query(RetentionPolicy(owner_in=frozenset({"alice", "carol"})), 10)

        assert _ids(records) == {"a", "c"}

    def test_status_filter(self, catalog_store: SqlCatalogStore) -> None:
        catalog_store.add_many(
            [
                make_record("f", status=RecordStatus.FAILED),
                make_record("p", status=RecordStatus.PUBLISHED),
                make_record("e", status=RecordStatus.ENCODING_FAILED),
            ]
        )

        policy = RetentionPolicy(status_in=frozenset({RecordStatus.FAILED, RecordStatus.ENCODING_FAILED}))

        assert _ids(catalog_store.query(policy, 10)) == {"f", "e"}

    def test_min_age_is_inclusive(self, catalog_store: SqlCatalogStore) -> None:
        catalog_store.add_many([make_record("exact", age_days=30), make_record("older", age_days=31), make_record("younger", age_days=29)])

        records = catalog_store.query(RetentionPolicy(min_age_days=30), 10, as_of=NOW)

        assert _ids(records) == {"exact", "older"}

    def test_age_uses_reference_time(self, catalog_store: SqlCatalogStore) -> None:
        catalog_store.add(make_record("r", age_days=10))

        assert catalog_store.query(RetentionPolicy(min_age_days=20), 10, as_of=NOW) == []
        assert _ids(catalog_store.query(RetentionPolicy(min_age_days=20), 10, as_of=NOW + timedelta(days=10))) == {"r"}

    def test_max_views_treats_unknown_as_zero(self, catalog_store: SqlCatalogStore) -> None:
        catalog_store.add_many(
            [
                make_record("unknown", view_count=None),
                make_record("few", view_count=9),
                make_record("boundary", view_count=10),
                make_record("many", view_count=500),
            ]
        )

        records = catalog_store.query(RetentionPolicy(max_views=10), 10)

        assert _ids(records) == {"unknown", "few"}

    def test_min_views(self, catalog_store: SqlCatalogStore) -> None:
        catalog_store.add_many([make_record("unknown", view_count=None), make_record("five", view_count=5), make_record("ten", view_count=10)])

        assert _ids(catalog_store.query(RetentionPolicy(min_views=5), 10)) == {"five", "ten"}
        assert _ids(catalog_store.query(RetentionPolicy(min_views=0), 10)) == {"unknown", "five", "ten"}

    def test_orphaned_only(self, catalog_store: SqlCatalogStore) -> None:
        catalog_store.add_many(
            [
                make_record("none"),
                make_record("blank", storage_locator="  ", original_locator=""),
                make_record("null-token", storage_locator="null", original_locator="undefined"),
                make_record("has-original", original_locator="uploads/a.mp4"),
                make_record("has-storage", storage_locator="a/b.mp4"),
            ]
        )

        records = catalog_store.query(RetentionPolicy(orphaned_only=True), 10)

        assert _ids(records) == {"none", "blank", "null-token"}

    def test_custom_null_tokens(self, catalog_db: CatalogDB) -> None:
        store = SqlCatalogStore(catalog_db, rules=ClassifierRules(null_tokens=frozenset({"N/A"})), clock=lambda: NOW)
        store.add_many([make_record("na", storage_locator="N/A"), make_record("null", storage_locator="null")])

        assert _ids(store.query(RetentionPolicy(orphaned_only=True), 10)) == {"na"}

    def test_orphan_filter_agrees_with_classifier(self, catalog_db: CatalogDB) -> None:
        """One rules object decides absence in SQL and in the classifier."""
        rules = ClassifierRules(null_tokens=frozenset({"N/A", "none"}))
        store = SqlCatalogStore(catalog_db, rules=rules, clock=lambda: NOW)
        records = [
            make_record("na", storage_locator="N/A"),
            make_record("none", storage_locator=" none ", original_locator=""),
            make_record("null", storage_locator="null"),
            make_record("real", storage_locator="p/720p.m3u8"),
        ]
        store.add_many(records)
        classifier = StorageClassifier(rules)

        selected = _ids(store.query(RetentionPolicy(orphaned_only=True), 10))

        assert selected == {r.record_id for r in records if classifier.classify(r).is_orphaned}
        assert selected == {"na", "none"}

    def test_filters_combine_with_and(self, catalog_store: SqlCatalogStore) -> None:
        catalog_store.add_many(
            [
                make_record("match", owner="alice", status=RecordStatus.PUBLISHED, view_count=1, age_days=400),
                make_record("wrong-owner", owner="bob", status=RecordStatus.PUBLISHED, view_count=1, age_days=400),
                make_record("too-young", owner="alice", status=RecordStatus.PUBLISHED, view_count=1, age_days=10),
                make_record("popular", owner="alice", status=RecordStatus.PUBLISHED, view_count=99, age_days=400),
            ]
        )
        policy = RetentionPolicy(
            owner_in=frozenset({"alice"}),
            status_in=frozenset({RecordStatus.PUBLISHED}),
            max_views=10,
            min_age_days=365,
        )

        assert _ids(catalog_store.query(policy, 10)) == {"match"}

    def test_offset_pages(self, catalog_store: SqlCatalogStore) -> None:
        catalog_store.add_many([make_record(f"r{i}", age_days=10 - i) for i in range(6)])

        first = catalog_store.query(RetentionPolicy(), 4)
        second = catalog_store.query(RetentionPolicy(), 4, offset=4)

        assert [r.record_id for r in first + second] == ["r0", "r1", "r2", "r3", "r4", "r5"]

    def test_count_ignores_limit(self, catalog_store: SqlCatalogStore) -> None:
        catalog_store.add_many([make_record(f"r{i}") for i in range(7)] + [make_record("p", status=RecordStatus.PUBLISHED)])

        assert catalog_store.count(RetentionPolicy(status_in=frozenset({RecordStatus.FAILED}), limit=2)) == 7


class TestRecordRoundTrip:
    """Records read back exactly as written."""

    def test_get_by_id(self, catalog_store: SqlCatalogStore) -> None:
        record = make_record(
            "full",
            owner="alice",
            title="A clip",
            size_bytes=123,
            view_count=4,
            storage_locator="p/720p.m3u8",
            original_locator="uploads/p.mov",
            permlink="p",
            cleanup=make_cleanup(backend=StorageKind.OBJECT_STORE),
        )
        catalog_store.add(record)

        assert catalog_store.get_by_id("full") == record

    def test_get_missing_returns_none(self, catalog_store: SqlCatalogStore) -> None:
        assert catalog_store.get_by_id("nope") is None


class TestWrites:
    """Tests for mark_cleaned and set_status."""

    def test_mark_cleaned_stamps_metadata(self, catalog_store: SqlCatalogStore) -> None:
        catalog_store.add(make_record("r", status=RecordStatus.FAILED))
        meta = CleanupMeta(cleaned_at=NOW, reason="Automated cleanup: test", backend=StorageKind.CONTENT_ADDRESSED, original_status=RecordStatus.FAILED)

        catalog_store.mark_cleaned("r", meta)

        stored = catalog_store.get_by_id("r")
        assert stored is not None
        assert stored.cleanup == meta
        assert stored.is_cleaned

    def test_mark_cleaned_missing_record(self, catalog_store: SqlCatalogStore) -> None:
        with pytest.raises(RecordNotFoundError, match="ghost"):
            catalog_store.mark_cleaned("ghost", make_cleanup())

    def test_set_status(self, catalog_store: SqlCatalogStore) -> None:
        catalog_store.add(make_record("r", status=RecordStatus.FAILED))

        catalog_store.set_status("r", RecordStatus.DELETED)

        stored = catalog_store.get_by_id("r")
        assert stored is not None
        assert stored.status is RecordStatus.DELETED

    def test_set_status_missing_record(self, catalog_store: SqlCatalogStore) -> None:
        with pytest.raises(RecordNotFoundError):
            catalog_store.set_status("ghost", RecordStatus.DELETED)

    def test_deleted_is_terminal(self, catalog_store: SqlCatalogStore) -> None:
        """Nothing moves a record out of DELETED."""
        catalog_store.add(make_record("r", status=RecordStatus.DELETED))

        with pytest.raises(InvalidStatusTransitionError):
            catalog_store.set_status("r", RecordStatus.PUBLISHED)
        catalog_store.set_status("r", RecordStatus.DELETED)

        stored = catalog_store.get_by_id("r")
        assert stored is not None
        assert stored.status is RecordStatus.DELETED


class TestStats:
    """Tests for status_stats and cleanup_stats."""

    def test_status_stats(self, catalog_store: SqlCatalogStore) -> None:
        catalog_store.add_many(
            [
                make_record("a", status=RecordStatus.FAILED),
                make_record("b", status=RecordStatus.FAILED),
                make_record("c", status=RecordStatus.PUBLISHED),
            ]
        )

        assert catalog_store.status_stats() == {RecordStatus.FAILED: 2, RecordStatus.PUBLISHED: 1}

    def test_cleanup_stats(self, catalog_store: SqlCatalogStore) -> None:
        old = CleanupMeta(
            cleaned_at=NOW - timedelta(days=30),
            reason="Automated cleanup: old",
            backend=StorageKind.OBJECT_STORE,
            original_status=RecordStatus.FAILED,
        )
        catalog_store.add_many(
            [
                make_record("recent", cleanup=make_cleanup(backend=StorageKind.CONTENT_ADDRESSED)),
                make_record("old", cleanup=old),
                make_record("admin", status=RecordStatus.DELETED, cleanup=make_cleanup(original_status=RecordStatus.DELETED)),
                make_record("untouched"),
            ]
        )

        stats = catalog_store.cleanup_stats()

        assert stats.total_cleaned == 3
        assert stats.manually_deleted == 1
        assert stats.recent == 2
        assert stats.by_backend == {StorageKind.CONTENT_ADDRESSED: 1, StorageKind.OBJECT_STORE: 1, StorageKind.UNKNOWN: 1}
        assert stats.by_reason == {"Automated cleanup: earlier run": 2, "Automated cleanup: old": 1}

    def test_mark_cleaned_of_deleted_record_counts_as_manual(self, catalog_store: SqlCatalogStore) -> None:
        catalog_store.add(make_record("r", status=RecordStatus.DELETED))

        catalog_store.mark_cleaned("r", make_cleanup(original_status=RecordStatus.DELETED))

        assert catalog_store.cleanup_stats().manually_deleted == 1


class TestRetire:
    """Tests for the single guarded retire write."""

    def _meta(self, **overrides: object) -> CleanupMeta:
        values: dict[str, object] = {
            "cleaned_at": NOW,
            "reason": "Automated cleanup: test",
            "backend": StorageKind.OBJECT_STORE,
            "original_status": RecordStatus.FAILED,
        }
        values.update(overrides)
        return CleanupMeta(**values)  # type: ignore[arg-type]

    def test_stamps_and_deletes_together(self, catalog_store: SqlCatalogStore) -> None:
        catalog_store.add(make_record("r", status=RecordStatus.FAILED))

        assert catalog_store.retire("r", self._meta()) is True

        stored = catalog_store.get_by_id("r")
        assert stored is not None
        assert stored.status is RecordStatus.DELETED
        assert stored.cleanup == self._meta()

    def test_already_cleaned_record_is_left_alone(self, catalog_store: SqlCatalogStore) -> None:
        earlier = make_cleanup(reason="Automated cleanup: first run")
        catalog_store.add(make_record("r", status=RecordStatus.FAILED, cleanup=earlier))

        assert catalog_store.retire("r", self._meta()) is False

        stored = catalog_store.get_by_id("r")
        assert stored is not None
        assert stored.cleanup == earlier
        assert stored.status is RecordStatus.FAILED

    def test_expected_stamp_allows_reprocessing(self, catalog_store: SqlCatalogStore) -> None:
        earlier = make_cleanup()
        catalog_store.add(make_record("r", cleanup=earlier))

        assert catalog_store.retire("r", self._meta(), expected=earlier)
        assert catalog_store.get_by_id("r").cleanup == self._meta()  # type: ignore[union-attr]

    def test_stale_expected_stamp_loses(self, catalog_store: SqlCatalogStore) -> None:
        catalog_store.add(make_record("r"))

        assert catalog_store.retire("r", self._meta(), expected=make_cleanup()) is False
        assert catalog_store.get_by_id("r").cleanup is None  # type: ignore[union-attr]

    def test_missing_record(self, catalog_store: SqlCatalogStore) -> None:
        assert catalog_store.retire("ghost", self._meta()) is False

    def test_partial_keeps_status_and_kept_resolutions(self, catalog_store: SqlCatalogStore) -> None:
        catalog_store.add(make_record("r", status=RecordStatus.PUBLISHED))
        meta = self._meta(original_status=RecordStatus.PUBLISHED, kept_resolutions=("480p", "360p"))

        assert catalog_store.retire("r", meta, status=None)

        stored = catalog_store.get_by_id("r")
        assert stored is not None
        assert stored.status is RecordStatus.PUBLISHED
        assert stored.cleanup is not None
        assert stored.cleanup.kept_resolutions == ("480p", "360p")
        stats = catalog_store.cleanup_stats()
        assert (stats.total_cleaned, stats.partial) == (1, 1)
