# tests/fixtures/__init__.py
"""Shared pytest fixtures for Reclaimer tests.

Available fixtures:
- catalog_db: Fresh in-memory CatalogDB per test
- catalog_store: SqlCatalogStore over catalog_db with a fixed clock
- sleep_recorder: time.sleep stand-in recording pacing delays
"""

from tests.fixtures.catalog import catalog_db, catalog_store
from tests.fixtures.stores import sleep_recorder

__all__ = [
    "catalog_db",
    "catalog_store",
    "sleep_recorder",
]
