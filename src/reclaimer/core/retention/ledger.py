# src/reclaimer/core/retention/ledger.py
"""Run-scoped record of locators already handled.

Two records can point at the same hash, file or prefix. Within one run
each locator is mutated at most once; the second record still gets
marked cleaned. The ledger lives for one run only, so a later run (or a
retry after a failure) starts clean.
"""

from dataclasses import dataclass, field

from reclaimer.contracts.records import Classification


@dataclass
class LocatorLedger:
    """Seen-sets for content hashes, object keys and key prefixes.

    The executor records a locator only after its backend call succeeded,
    so a failed locator is attempted again by the next record sharing it.
    The preview analyzer records every locator as it goes to forecast
    the same skips.
    """

    hashes: set[str] = field(default_factory=set)
    files: set[str] = field(default_factory=set)
    prefixes: set[str] = field(default_factory=set)

    def has_hash(self, content_hash: str) -> bool:
        return content_hash in self.hashes

    def has_file(self, key: str) -> bool:
        return key in self.files

    def has_prefix(self, prefix: str) -> bool:
        return prefix in self.prefixes

    def record_hash(self, content_hash: str) -> None:
        self.hashes.add(content_hash)

    def record_file(self, key: str) -> None:
        self.files.add(key)

    def record_prefix(self, prefix: str) -> None:
        self.prefixes.add(prefix)

    def pending(self, classification: Classification) -> tuple[str | None, tuple[str, ...], tuple[str, ...]]:
        """Split a classification into locators not yet handled this run.

        Returns:
            (content_hash or None, files, prefixes) still to act on
        """
        content_hash = classification.content_hash
        if content_hash is not None and self.has_hash(content_hash):
            content_hash = None
        files = tuple(k for k in classification.files if not self.has_file(k))
        prefixes = tuple(p for p in classification.prefixes if not self.has_prefix(p))
        return content_hash, files, prefixes

    def skipped_count(self, classification: Classification) -> int:
        """Number of this classification's locators already handled."""
        content_hash, files, prefixes = self.pending(classification)
        skipped_hash = int(classification.content_hash is not None and content_hash is None)
        return skipped_hash + (len(classification.files) - len(files)) + (len(classification.prefixes) - len(prefixes))

    def record_all(self, classification: Classification) -> None:
        if classification.content_hash is not None:
            self.record_hash(classification.content_hash)
        for key in classification.files:
            self.record_file(key)
        for prefix in classification.prefixes:
            self.record_prefix(prefix)

    @property
    def unique_count(self) -> int:
        return len(self.hashes) + len(self.files) + len(self.prefixes)
