# src/reclaimer/core/classifier.py
"""Storage classifier: record -> backend kind + concrete locator set.

Pure and deterministic. The preview analyzer and the executor both call
it, so what a preview reports and what an execution deletes can only
differ if the record itself changed in between.

Content-addressed locators:
    ipfs://QmHash, ipfs://QmHash/manifest.m3u8, or a bare QmHash.

Object-store locators:
    anything with a file extension or a path separator that is not a
    content address, not a legacy null token, and not a bare 32-hex
    upload-session token. Stored renditions live under the record's
    permlink folder:

        <permlink>/<res>.m3u8        playlist per resolution
        <permlink>/default.m3u8      master playlist
        <permlink>/<res>/            segment folder per resolution
        <permlink>/thumbnails/
        <permlink>/                  base folder (catch-all)

    plus the processed file itself and the original upload, which is
    deleted independently of the renditions.
"""

import re

from reclaimer.contracts.enums import StorageKind
from reclaimer.contracts.records import Classification, ContentRecord
from reclaimer.core.config import ClassifierRules


def _unique(items: list[str]) -> tuple[str, ...]:
    """Drop blanks and duplicates, keeping first-seen order."""
    seen: dict[str, None] = {}
    for item in items:
        if item and item.strip():
            seen.setdefault(item, None)
    return tuple(seen)


class StorageClassifier:
    """Classifies records into a closed three-way StorageKind.

    The borderline rule deciding whether a string is a real object key is
    is_object_store_key(); subclass and override it if your catalog's
    legacy shapes need a different answer.
    """

    def __init__(self, rules: ClassifierRules | None = None) -> None:
        self._rules = rules or ClassifierRules()
        self._hash_re = re.compile(self._rules.content_hash_pattern)
        self._session_re = re.compile(self._rules.session_token_pattern)
        self._extension_re = re.compile(self._rules.extension_pattern)

    @property
    def rules(self) -> ClassifierRules:
        return self._rules

    # -- locator predicates -------------------------------------------------

    def is_absent(self, locator: str | None) -> bool:
        """True for None, blank strings, and legacy null placeholders."""
        if locator is None:
            return True
        stripped = locator.strip()
        return not stripped or stripped in self._rules.null_tokens

    def _present(self, value: str | None) -> str | None:
        """Stripped value, or None when it counts as absent."""
        if value is None or self.is_absent(value):
            return None
        return value.strip()

    def extract_content_hash(self, locator: str | None) -> str | None:
        """Return the content hash a locator points at, or None.

        Accepts the scheme form (with an optional trailing path) and the
        bare hash form. A scheme form whose hash is malformed yields None.
        """
        candidate = self._present(locator)
        if candidate is None:
            return None
        scheme = self._rules.content_address_scheme
        if candidate.startswith(scheme):
            candidate = candidate[len(scheme) :]
        candidate = candidate.split("/", 1)[0]
        if self._hash_re.match(candidate):
            return candidate
        return None

    def is_object_store_key(self, locator: str) -> bool:
        """Heuristic: does this string name a real stored object?

        Real keys have a file extension or a path separator. Bare 32-hex
        tokens are upload-session ids left behind by the uploader, never
        stored objects. Borderline names follow these rules exactly; tighten
        them through ClassifierRules rather than here.
        """
        if self.is_absent(locator):
            return False
        if locator.startswith(self._rules.content_address_scheme):
            return False
        has_extension = self._extension_re.search(locator) is not None
        has_path = "/" in locator
        is_session_token = self._session_re.match(locator) is not None
        return (has_extension or has_path) and not is_session_token

    def check_kept_resolutions(self, keep_resolutions: tuple[str, ...]) -> None:
        """Refuse kept resolutions the rules do not know.

        An unknown name would keep nothing and turn a partial pass into a
        near-full deletion.

        Raises:
            ValueError: A name is not in ClassifierRules.resolutions
        """
        unknown = [r for r in keep_resolutions if r not in self._rules.resolutions]
        if unknown:
            raise ValueError(f"Unknown resolution(s) to keep {unknown}; configured: {list(self._rules.resolutions)}")

    # -- classification -----------------------------------------------------

    def kind_of(self, record: ContentRecord) -> StorageKind:
        """Backend kind only, without deriving locators."""
        return self.classify(record).kind

    def classify(self, record: ContentRecord, keep_resolutions: tuple[str, ...] = ()) -> Classification:
        """Classify a record and derive the locators to act on.

        With keep_resolutions, object-store locators exclude the kept
        renditions and everything a player still needs to serve them.
        """
        has_locator = not (self.is_absent(record.storage_locator) and self.is_absent(record.original_locator))

        content_hash = self.extract_content_hash(record.storage_locator)
        if content_hash is not None:
            return Classification(kind=StorageKind.CONTENT_ADDRESSED, has_locator=True, content_hash=content_hash)

        if record.storage_locator is not None and self.is_object_store_key(record.storage_locator):
            files, prefixes = self.object_store_locators(record, keep_resolutions)
            return Classification(kind=StorageKind.OBJECT_STORE, has_locator=True, files=files, prefixes=prefixes)

        return Classification(kind=StorageKind.UNKNOWN, has_locator=has_locator)

    def object_store_locators(self, record: ContentRecord, keep_resolutions: tuple[str, ...] = ()) -> tuple[tuple[str, ...], tuple[str, ...]]:
        """Derive (files, prefixes) for an object-store record.

        Kept resolutions lose nothing: their playlist and segment folder
        stay, as do thumbnails and the base folder, and a processed file
        naming a kept resolution is left alone. The master playlist and the
        original upload go either way.
        """
        rules = self._rules
        files: list[str] = []
        prefixes: list[str] = []
        dropped = tuple(res for res in rules.resolutions if res not in keep_resolutions)

        permlink = self._present(record.permlink)
        if permlink is not None:
            permlink = permlink.strip("/")
        if permlink:
            files.extend(f"{permlink}/{res}.m3u8" for res in dropped)
            files.append(f"{permlink}/{rules.default_playlist}")
            prefixes.extend(f"{permlink}/{res}/" for res in dropped)
            if not keep_resolutions:
                prefixes.append(f"{permlink}/{rules.thumbnails_folder}/")
                if rules.include_base_prefix:
                    prefixes.append(f"{permlink}/")

        processed = self._present(record.storage_locator)
        if processed is not None and self.is_object_store_key(processed):
            if not any(res in processed for res in keep_resolutions):
                files.append(processed)

        original = self._present(record.original_locator)
        if original is not None and not original.startswith(rules.content_address_scheme):
            files.append(original)
            basename = original.rsplit("/", 1)[-1]
            if basename:
                files.extend(f"{folder}/{basename}" for folder in rules.original_prefixes)

        return _unique(files), _unique(prefixes)
