# tests/cli/conftest.py
"""Shared fixtures and helpers for CLI tests."""

import json
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import pytest

from reclaimer.contracts import ContentRecord
from reclaimer.core.catalog import CatalogDB, SqlCatalogStore


def seed_catalog(db_path: Path, records: Iterable[ContentRecord]) -> None:
    """Create a SQLite catalog file holding the given records."""
    db = CatalogDB.from_url(f"sqlite:///{db_path}")
    try:
        SqlCatalogStore(db).add_many(records)
    finally:
        db.close()


def read_catalog(db_path: Path, record_id: str) -> ContentRecord | None:
    db = CatalogDB.from_url(f"sqlite:///{db_path}")
    try:
        return SqlCatalogStore(db).get_by_id(record_id)
    finally:
        db.close()


def json_lines(output: str) -> list[dict[str, Any]]:
    """Parse every JSON object line, ignoring log lines mixed into output."""
    return [json.loads(line) for line in output.splitlines() if line.startswith("{")]


@pytest.fixture
def catalog_path(tmp_path: Path) -> Path:
    return tmp_path / "catalog.db"


@pytest.fixture
def settings_file(tmp_path: Path, catalog_path: Path) -> Path:
    """Settings pointing at catalog_path, with pacing off and quiet logs."""
    path = tmp_path / "settings.yaml"
    path.write_text(
        f"""
catalog:
  url: "sqlite:///{catalog_path}"
pacing:
  batch_delay_seconds: 0
  item_delay_seconds: 0
logging:
  level: WARNING
"""
    )
    return path
