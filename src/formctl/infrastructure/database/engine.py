"""Database engine setup for SQLite with WAL mode.

The store lives at ``{store_dir}/formctl.db``. SQLAlchemy Core (not ORM)
is used: every operation is one short transaction, there is no benefit
from session management or identity maps.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Connection, Engine

from formctl.infrastructure.database.schema import metadata

DB_FILENAME = "formctl.db"
BUSY_TIMEOUT_MS = 5000


def create_db_engine(db_path: Path | None) -> Engine:
    """Create a SQLite engine with WAL mode. ``None`` gives an in-memory DB.

    Every transaction starts with ``BEGIN IMMEDIATE``, so the write lock is
    taken before the first read. A read-then-write such as granting a lease
    or claiming a version number therefore cannot interleave with another
    process doing the same; the second writer waits on ``busy_timeout``.
    """
    url = f"sqlite:///{db_path}" if db_path is not None else "sqlite://"
    engine = create_engine(url, echo=False)

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn: Any, _: Any) -> None:
        # Hand transaction control to the "begin" listener below; pysqlite
        # would otherwise defer BEGIN until the first write statement.
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        if db_path is not None:
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn: Connection) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def init_database(store_dir: Path | None) -> Engine:
    """Initialize the store at ``{store_dir}/formctl.db`` and create all tables.

    Passing ``None`` creates a private in-memory database, used by tests
    and one-shot evaluation.

    Idempotent — safe to call on an existing store.
    """
    if store_dir is None:
        engine = create_db_engine(None)
    else:
        store_dir.mkdir(parents=True, exist_ok=True)
        engine = create_db_engine(store_dir / DB_FILENAME)
    metadata.create_all(engine)
    return engine
