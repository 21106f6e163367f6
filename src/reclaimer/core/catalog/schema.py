# src/reclaimer/core/catalog/schema.py
"""SQLAlchemy table definitions for the content catalog.

Uses SQLAlchemy Core (not ORM) for explicit control over queries
and compatibility with multiple database backends.
"""

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)

# Shared metadata for all tables
metadata = MetaData()

content_records_table = Table(
    "content_records",
    metadata,
    Column("record_id", String(64), primary_key=True),
    Column("owner", String(128), nullable=False),
    Column("title", Text),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("size_bytes", BigInteger),  # best-effort, NULL means unknown
    Column("view_count", Integer),  # best-effort, NULL means unknown
    Column("status", String(32), nullable=False),
    Column("storage_locator", Text),
    Column("original_locator", Text),
    Column("permlink", String(256)),
    # Cleanup stamp: set together or not at all
    Column("cleaned_at", DateTime(timezone=True)),
    Column("cleanup_reason", Text),
    Column("cleanup_backend", String(32)),
    Column("original_status", String(32)),
    # Comma-joined resolutions left in place by a partial (keep-resolution) pass
    Column("kept_resolutions", String(128)),
    # Records already DELETED by an admin before the purge ran
    Column("was_manually_deleted", Boolean, nullable=False, default=False),
    Column("updated_at", DateTime(timezone=True)),
)

Index("ix_content_records_status_created", content_records_table.c.status, content_records_table.c.created_at)
Index("ix_content_records_owner", content_records_table.c.owner)
Index("ix_content_records_cleaned_at", content_records_table.c.cleaned_at)
