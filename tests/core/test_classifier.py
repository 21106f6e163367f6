# tests/core/test_classifier.py
"""Tests for StorageClassifier."""

import pytest

from reclaimer.contracts import ContentRecord, RecordStatus, StorageKind
from reclaimer.core.classifier import StorageClassifier
from reclaimer.core.config import ClassifierRules
from tests.fixtures.catalog import make_cid, make_record

CID = make_cid("classifier")


@pytest.fixture
def classifier() -> StorageClassifier:
    return StorageClassifier()


class TestLocatorPredicates:
    """Tests for the string-level predicates."""

    @pytest.mark.parametrize("locator", [None, "", "   ", "null", "undefined", " null "])
    def test_absent_locators(self, classifier: StorageClassifier, locator: str | None) -> None:
        """None, blanks and legacy null tokens all mean 'no locator'."""
        assert classifier.is_absent(locator)

    def test_present_locator(self, classifier: StorageClassifier) -> None:
        assert not classifier.is_absent("video.mp4")

    @pytest.mark.parametrize(
        "locator",
        [f"ipfs://{CID}", f"ipfs://{CID}/manifest.m3u8", CID, f"  {CID}  "],
    )
    def test_extract_content_hash_forms(self, classifier: StorageClassifier, locator: str) -> None:
        """Scheme form, scheme with path, and bare hash all yield the hash."""
        assert classifier.extract_content_hash(locator) == CID

    @pytest.mark.parametrize("locator", ["ipfs://not-a-hash", "ipfs://Qm123", "Qm" + "a" * 43, "video.mp4", None])
    def test_extract_content_hash_rejects_malformed(self, classifier: StorageClassifier, locator: str | None) -> None:
        assert classifier.extract_content_hash(locator) is None

    @pytest.mark.parametrize("locator", ["  ", "undefined", f" ipfs://{CID} "])
    def test_extract_content_hash_handles_padding_and_null_tokens(self, classifier: StorageClassifier, locator: str) -> None:
        """Absent forms yield None; padded real hashes still resolve."""
        expected = CID if CID in locator else None
        assert classifier.extract_content_hash(locator) == expected

    @pytest.mark.parametrize(
        ("locator", "expected"),
        [
            ("clip.mp4", True),
            ("folder/clip", True),
            ("abc123/720p.m3u8", True),
            ("d41d8cd98f00b204e9800998ecf8427e.mp4", True),
            ("d41d8cd98f00b204e9800998ecf8427e", False),
            ("plainname", False),
            (f"ipfs://{CID}", False),
            ("ipfs://broken/path.mp4", False),
            ("null", False),
        ],
    )
    def test_is_object_store_key(self, classifier: StorageClassifier, locator: str, expected: bool) -> None:
        """Keys need an extension or a path; bare 32-hex session tokens never qualify."""
        assert classifier.is_object_store_key(locator) is expected


class TestClassify:
    """Tests for record classification and locator derivation."""

    def test_content_addressed_record(self, classifier: StorageClassifier) -> None:
        record = make_record(storage_locator=f"ipfs://{CID}/manifest.m3u8", permlink="abc")
        result = classifier.classify(record)

        assert result.kind is StorageKind.CONTENT_ADDRESSED
        assert result.content_hash == CID
        assert result.files == ()
        assert result.prefixes == ()

    def test_object_store_record_with_permlink(self, classifier: StorageClassifier) -> None:
        """Renditions, master playlist, segment folders and base folder derive from the permlink."""
        record = make_record(storage_locator="abc123/720p.m3u8", permlink="abc123")
        result = classifier.classify(record)

        assert result.kind is StorageKind.OBJECT_STORE
        assert result.content_hash is None
        assert result.files == (
            "abc123/1080p.m3u8",
            "abc123/720p.m3u8",
            "abc123/480p.m3u8",
            "abc123/360p.m3u8",
            "abc123/default.m3u8",
        )
        assert result.prefixes == (
            "abc123/1080p/",
            "abc123/720p/",
            "abc123/480p/",
            "abc123/360p/",
            "abc123/thumbnails/",
            "abc123/",
        )

    def test_original_upload_and_copies_are_included(self, classifier: StorageClassifier) -> None:
        record = make_record(storage_locator="processed/clip.mp4", original_locator="uploads/clip.mov")
        result = classifier.classify(record)

        assert result.kind is StorageKind.OBJECT_STORE
        assert result.files == (
            "processed/clip.mp4",
            "uploads/clip.mov",
            "originals/clip.mov",
            "raw/clip.mov",
            "source/clip.mov",
        )
        assert result.prefixes == ()

    def test_without_permlink_no_prefixes(self, classifier: StorageClassifier) -> None:
        """Prefixes are never guessed from the locator itself."""
        result = classifier.classify(make_record(storage_locator="abc123/720p.m3u8"))

        assert result.prefixes == ()
        assert result.files == ("abc123/720p.m3u8",)

    @pytest.mark.parametrize("locator", [None, "", "null", "undefined"])
    def test_orphaned_record(self, classifier: StorageClassifier, locator: str | None) -> None:
        result = classifier.classify(make_record(storage_locator=locator, original_locator=None))

        assert result.kind is StorageKind.UNKNOWN
        assert result.is_orphaned
        assert not result.is_unclassifiable

    @pytest.mark.parametrize("locator", ["d41d8cd98f00b204e9800998ecf8427e", "ipfs://garbage", "plainname"])
    def test_unclassifiable_record(self, classifier: StorageClassifier, locator: str) -> None:
        """A locator that is present but matches no backend is never guessed at."""
        result = classifier.classify(make_record(storage_locator=locator))

        assert result.kind is StorageKind.UNKNOWN
        assert result.is_unclassifiable
        assert result.content_hash is None
        assert result.files == ()
        assert result.prefixes == ()

    def test_only_original_locator_is_unclassifiable(self, classifier: StorageClassifier) -> None:
        result = classifier.classify(make_record(storage_locator=None, original_locator="uploads/clip.mov"))

        assert result.is_unclassifiable

    def test_kind_of_matches_classify(self, classifier: StorageClassifier) -> None:
        record = make_record(storage_locator=CID)
        assert classifier.kind_of(record) is classifier.classify(record).kind

    def test_classification_is_deterministic(self, classifier: StorageClassifier) -> None:
        record = make_record(storage_locator="p/720p.m3u8", permlink="p", original_locator="uploads/a.mp4", status=RecordStatus.PUBLISHED)
        assert classifier.classify(record) == classifier.classify(record)


class TestRules:
    """Tests for classifier configuration."""

    def test_base_prefix_can_be_disabled(self) -> None:
        classifier = StorageClassifier(ClassifierRules(include_base_prefix=False, resolutions=("720p",)))
        result = classifier.classify(make_record(storage_locator="p/720p.m3u8", permlink="p"))

        assert result.prefixes == ("p/720p/", "p/thumbnails/")
        assert result.files == ("p/720p.m3u8", "p/default.m3u8")

    def test_custom_hash_pattern(self) -> None:
        classifier = StorageClassifier(ClassifierRules(content_hash_pattern=r"^bafy[a-z2-7]{10,}$"))
        result = classifier.classify(make_record(storage_locator="ipfs://bafyabcdefghijk"))

        assert result.kind is StorageKind.CONTENT_ADDRESSED
        assert result.content_hash == "bafyabcdefghijk"

    def test_invalid_pattern_rejected(self) -> None:
        with pytest.raises(ValueError, match="Invalid regular expression"):
            ClassifierRules(extension_pattern="(unclosed")

    def test_object_key_rule_can_be_overridden(self) -> None:
        """Subclasses may tighten the borderline key rule."""

        class StrictClassifier(StorageClassifier):
            def is_object_store_key(self, locator: str) -> bool:
                return super().is_object_store_key(locator) and "/" in locator

        record = make_record(storage_locator="clip.mp4")
        assert StorageClassifier().classify(record).kind is StorageKind.OBJECT_STORE
        assert StrictClassifier().classify(record).is_unclassifiable


class TestKeepResolutions:
    """Locator derivation for runs that keep some renditions."""

    def _record(self, **kwargs: object) -> ContentRecord:
        kwargs.setdefault("storage_locator", "clip/720p.m3u8")
        return make_record("clip", permlink="clip", original_locator="uploads/clip.mov", **kwargs)  # type: ignore[arg-type]

    def test_kept_resolution_and_shared_assets_excluded(self, classifier: StorageClassifier) -> None:
        result = classifier.classify(self._record(), keep_resolutions=("480p",))

        assert result.kind is StorageKind.OBJECT_STORE
        assert result.prefixes == ("clip/1080p/", "clip/720p/", "clip/360p/")
        assert "clip/480p.m3u8" not in result.files
        assert {"clip/1080p.m3u8", "clip/720p.m3u8", "clip/360p.m3u8", "clip/default.m3u8", "uploads/clip.mov"} <= set(result.files)

    def test_processed_file_at_kept_resolution_is_kept(self, classifier: StorageClassifier) -> None:
        result = classifier.classify(self._record(storage_locator="clip/480p.m3u8"), keep_resolutions=("480p",))

        assert "clip/480p.m3u8" not in result.files

    def test_no_kept_resolutions_is_a_full_derivation(self, classifier: StorageClassifier) -> None:
        record = self._record()

        assert classifier.classify(record, keep_resolutions=()) == classifier.classify(record)
        assert "clip/" in classifier.classify(record).prefixes

    def test_content_addressed_records_unaffected(self, classifier: StorageClassifier) -> None:
        record = make_record("r", storage_locator=f"ipfs://{CID}")

        assert classifier.classify(record, keep_resolutions=("480p",)).content_hash == CID

    def test_unknown_kept_resolution_refused(self, classifier: StorageClassifier) -> None:
        classifier.check_kept_resolutions(("480p", "1080p"))

        with pytest.raises(ValueError, match="540p"):
            classifier.check_kept_resolutions(("480p", "540p"))
