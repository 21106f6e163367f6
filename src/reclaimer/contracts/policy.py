"""Retention policy value object and named presets.

A RetentionPolicy is the whole predicate a run selects with. Every purge
flavour (failed encodings, stuck uploads, low engagement...) is one
policy value fed to the same executor; presets are data, not code paths.
"""

from typing import Self

from pydantic import BaseModel, Field, field_validator, model_validator

from reclaimer.contracts.enums import RecordStatus, StorageKind


class RetentionPolicy(BaseModel):
    """Predicate describing which records are eligible for purge.

    All filters combine with AND. Unset filters do not constrain.

    Example YAML:
        name: low-engagement
        status_in: [published]
        max_views: 10
        min_age_days: 180
        limit: 500
        batch_size: 50
    """

    model_config = {"frozen": True, "extra": "forbid"}

    name: str = Field(default="custom", min_length=1, description="Label used in cleanup reasons and logs")
    owner_in: frozenset[str] | None = Field(default=None, description="Only records owned by these identities")
    status_in: frozenset[RecordStatus] | None = Field(default=None, description="Only records in these statuses")
    min_age_days: int | None = Field(default=None, ge=0, description="Only records created at least this many days ago")
    max_views: int | None = Field(default=None, ge=0, description="Only records with fewer views (unknown views match)")
    min_views: int | None = Field(default=None, ge=0, description="Only records with at least this many views")
    backend_kind: StorageKind | None = Field(default=None, description="Only records classified as this backend")
    orphaned_only: bool = Field(default=False, description="Only records with no locator at all")
    exclude_already_cleaned: bool = Field(default=True, description="Skip records that already carry cleanup metadata")
    limit: int = Field(default=100, gt=0, description="Maximum records selected per run")
    batch_size: int = Field(default=100, gt=0, description="Records processed between pacing pauses")
    keep_resolutions: tuple[str, ...] = Field(
        default=(),
        description="Renditions left in place; non-empty makes the run partial (records keep their status)",
    )
    partial_reclaim_ratio: float = Field(
        default=0.7,
        gt=0,
        le=1,
        description="Share of a record's size attributed as freed by a partial run",
    )

    @field_validator("owner_in", "status_in")
    @classmethod
    def validate_not_empty(cls, v: frozenset | None) -> frozenset | None:  # type: ignore[type-arg]
        """An empty membership set would silently match nothing."""
        if v is not None and len(v) == 0:
            raise ValueError("membership filter must contain at least one value (omit it to match all)")
        return v

    @field_validator("keep_resolutions")
    @classmethod
    def validate_resolutions(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        cleaned = tuple(dict.fromkeys(r.strip() for r in v))
        if any(not r for r in cleaned):
            raise ValueError("keep_resolutions entries must be non-blank")
        return cleaned

    @model_validator(mode="after")
    def validate_consistency(self) -> Self:
        if self.min_views is not None and self.max_views is not None and self.min_views >= self.max_views:
            raise ValueError(f"min_views ({self.min_views}) must be below max_views ({self.max_views})")
        if self.orphaned_only and self.backend_kind not in (None, StorageKind.UNKNOWN):
            raise ValueError("orphaned_only records have no locator and can only be of backend_kind 'unknown'")
        if self.keep_resolutions and self.backend_kind is not StorageKind.OBJECT_STORE:
            raise ValueError("keep_resolutions only applies to backend_kind 'object_store' (set it explicitly)")
        return self

    @property
    def is_partial(self) -> bool:
        """Partial runs delete some renditions and leave the record live."""
        return bool(self.keep_resolutions)

    def describe(self) -> str:
        """One-line summary of the predicate for cleanup reasons."""
        parts: list[str] = []
        if self.owner_in:
            parts.append("owner in " + ",".join(sorted(self.owner_in)))
        if self.status_in:
            parts.append("status in " + ",".join(sorted(s.value for s in self.status_in)))
        if self.min_age_days is not None:
            parts.append(f">={self.min_age_days}d old")
        if self.max_views is not None:
            parts.append(f"<{self.max_views} views")
        if self.min_views is not None:
            parts.append(f">={self.min_views} views")
        if self.backend_kind is not None:
            parts.append(f"backend {self.backend_kind.value}")
        if self.orphaned_only:
            parts.append("orphaned")
        if self.keep_resolutions:
            parts.append("keep " + ",".join(self.keep_resolutions))
        if not parts:
            return self.name
        return f"{self.name} [{'; '.join(parts)}]"


# Numbers here are defaults, not engineering: override per run with
# PRESETS["low-engagement"].model_copy(update={"max_views": 500}).
PRESETS: dict[str, RetentionPolicy] = {
    "failed-encodings": RetentionPolicy(
        name="failed-encodings",
        status_in=frozenset({RecordStatus.ENCODING_FAILED, RecordStatus.FAILED, RecordStatus.IPFS_PINNING_FAILED}),
    ),
    "stuck-uploads": RetentionPolicy(
        name="stuck-uploads",
        status_in=frozenset({RecordStatus.UPLOADED, RecordStatus.ENCODING_IPFS, RecordStatus.PROCESSING, RecordStatus.DRAFT}),
        min_age_days=365,
    ),
    "abandoned-manual": RetentionPolicy(
        name="abandoned-manual",
        status_in=frozenset({RecordStatus.PUBLISH_MANUAL, RecordStatus.MANUAL_REVIEW}),
        min_age_days=7,
    ),
    "admin-deleted": RetentionPolicy(
        name="admin-deleted",
        status_in=frozenset({RecordStatus.DELETED}),
    ),
    "low-engagement": RetentionPolicy(
        name="low-engagement",
        status_in=frozenset({RecordStatus.PUBLISHED}),
        max_views=10,
    ),
    "orphaned": RetentionPolicy(
        name="orphaned",
        orphaned_only=True,
    ),
    "storage-diet": RetentionPolicy(
        name="storage-diet",
        status_in=frozenset({RecordStatus.PUBLISHED}),
        max_views=500,
        min_age_days=180,
        backend_kind=StorageKind.OBJECT_STORE,
        keep_resolutions=("480p",),
        limit=25,
    ),
}


def get_preset(name: str) -> RetentionPolicy:
    """Look up a named preset.

    Raises:
        KeyError: If no preset has that name (message lists valid names)
    """
    try:
        return PRESETS[name]
    except KeyError:
        raise KeyError(f"Unknown policy preset {name!r}; available: {', '.join(sorted(PRESETS))}") from None
