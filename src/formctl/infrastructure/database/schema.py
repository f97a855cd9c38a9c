"""SQLAlchemy Core table definitions for the formctl store.

Timestamps are stored as ISO 8601 text in UTC. Form snapshots are stored
as JSON text.
"""

from __future__ import annotations

from sqlalchemy import (
    Column,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    UniqueConstraint,
)

metadata = MetaData()

# One row per form that has ever been locked. The row outlives the lease so
# that lock_version keeps increasing across acquisitions.
form_locks = Table(
    "form_locks",
    metadata,
    Column("form_id", Text, primary_key=True),
    Column("holder_id", Text),  # NULL when unlocked
    Column("locked_at", Text),
    Column("lock_expires_at", Text),
    Column("lock_version", Integer, nullable=False, default=0, server_default="0"),
)

form_versions = Table(
    "form_versions",
    metadata,
    Column("id", Text, primary_key=True),  # {form_id}@v{n}
    Column("form_id", Text, nullable=False),
    Column("version_number", Integer, nullable=False),
    Column("schema_snapshot", Text, nullable=False),  # JSON FormSchema
    Column("title", Text, nullable=False),
    Column("description", Text, nullable=False, default="", server_default=""),
    Column("status", Text, nullable=False, default="draft", server_default="draft"),
    Column("created_at", Text, nullable=False),
    Column("change_summary", Text),
    Column("created_by", Text),
    Column("published_at", Text),
    UniqueConstraint("form_id", "version_number"),
)

version_counters = Table(
    "version_counters",
    metadata,
    Column("form_id", Text, primary_key=True),
    Column("next_value", Integer, nullable=False),
)

Index("ix_form_versions_form", form_versions.c.form_id, form_versions.c.version_number)
Index("ix_form_versions_status", form_versions.c.form_id, form_versions.c.status)
