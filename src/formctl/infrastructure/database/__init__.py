"""SQLite database engine, schema, and version counters via SQLAlchemy Core."""

from formctl.infrastructure.database.counters import next_version_number
from formctl.infrastructure.database.engine import create_db_engine, init_database
from formctl.infrastructure.database.schema import (
    form_locks,
    form_versions,
    metadata,
    version_counters,
)

__all__ = [
    "create_db_engine",
    "form_locks",
    "form_versions",
    "init_database",
    "metadata",
    "next_version_number",
    "version_counters",
]
