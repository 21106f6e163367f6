# src/reclaimer/core/catalog/__init__.py
"""Catalog: the persistent state store holding content records.

Primary API:
    CatalogDB - Database connection management
    SqlCatalogStore - CatalogStore implementation over SQLAlchemy Core
"""

from reclaimer.core.catalog.database import CatalogDB
from reclaimer.core.catalog.schema import content_records_table, metadata
from reclaimer.core.catalog.store import SqlCatalogStore

__all__ = [
    "CatalogDB",
    "SqlCatalogStore",
    "content_records_table",
    "metadata",
]
