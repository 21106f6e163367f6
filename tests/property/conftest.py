# tests/property/conftest.py
"""Shared Hypothesis strategies for property-based tests.

Strategy Categories:
- Locator strings: well-formed and malformed storage locators
- Catalog specs: small generated catalogs with shared locators and failures

Usage:
    from tests.property.conftest import catalog_specs, locators

    @given(spec=catalog_specs)
    def test_run_invariant(spec: CatalogSpec) -> None:
        ...
"""

from dataclasses import dataclass

from hypothesis import strategies as st

from reclaimer.contracts import ContentRecord
from tests.fixtures.catalog import make_cid, make_record

# =============================================================================
# Locator strings
# =============================================================================

_hashes = st.builds(make_cid, st.text(min_size=1, max_size=8))

_path_segment = st.text(alphabet=st.characters(whitelist_categories=("Ll", "Nd"), whitelist_characters="-_"), min_size=1, max_size=12)

locators = st.one_of(
    st.none(),
    st.sampled_from(["", "   ", "null", "undefined", "d41d8cd98f00b204e9800998ecf8427e"]),
    _hashes,
    _hashes.map(lambda h: f"ipfs://{h}"),
    _hashes.map(lambda h: f"ipfs://{h}/manifest.m3u8"),
    st.builds(lambda a, b: f"{a}/{b}.mp4", _path_segment, _path_segment),
    st.text(max_size=40),
)

# =============================================================================
# Generated catalogs
# =============================================================================

KINDS = ("ipfs", "s3", "orphan", "token")


@dataclass(frozen=True)
class RecordSpec:
    kind: str
    group: int
    size_bytes: int | None


@dataclass(frozen=True)
class CatalogSpec:
    """Records plus the locator groups whose backend call will fail."""

    records: tuple[RecordSpec, ...]
    failing_groups: frozenset[int]

    def build(self) -> list[ContentRecord]:
        """Materialize records; records in the same group share locators."""
        built = []
        for i, spec in enumerate(self.records):
            record_id = f"r{i:03d}"
            age_days = 1000 - i
            if spec.kind == "ipfs":
                built.append(make_record(record_id, storage_locator=f"ipfs://{self.hash_for(spec.group)}", size_bytes=spec.size_bytes, age_days=age_days))
            elif spec.kind == "s3":
                permlink = f"p{spec.group}"
                built.append(
                    make_record(
                        record_id,
                        permlink=permlink,
                        storage_locator=f"{permlink}/clip{i}.mp4",
                        size_bytes=spec.size_bytes,
                        age_days=age_days,
                    )
                )
            elif spec.kind == "orphan":
                built.append(make_record(record_id, size_bytes=spec.size_bytes, age_days=age_days))
            else:
                built.append(
                    make_record(record_id, storage_locator="d41d8cd98f00b204e9800998ecf8427e", size_bytes=spec.size_bytes, age_days=age_days)
                )
        return built

    @staticmethod
    def hash_for(group: int) -> str:
        return make_cid(f"group-{group}")

    def expected_failures(self) -> set[str]:
        """Ids that must end up in the error list."""
        failed = set()
        for i, spec in enumerate(self.records):
            if spec.kind == "token" or (spec.kind == "ipfs" and spec.group in self.failing_groups):
                failed.add(f"r{i:03d}")
        return failed


_record_specs = st.builds(
    RecordSpec,
    kind=st.sampled_from(KINDS),
    group=st.integers(min_value=0, max_value=3),
    size_bytes=st.one_of(st.none(), st.integers(min_value=0, max_value=10**9)),
)

catalog_specs = st.builds(
    CatalogSpec,
    records=st.lists(_record_specs, min_size=0, max_size=12).map(tuple),
    failing_groups=st.frozensets(st.integers(min_value=0, max_value=3), max_size=2),
)
