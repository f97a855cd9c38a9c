"""FormStore — repository over the SQLite lease and version tables.

The store is the single dependency injected into every service. It owns
the database engine, the authority clock, the query cache and the plugin
manager. :meth:`FormStore.transaction` wraps ``engine.begin()`` and yields
a :class:`StoreTransaction` holding the consolidated data-access helpers,
so every lease or version write commits or rolls back as one unit.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import insert, select, update

from formctl.infrastructure.cache import QueryCache
from formctl.infrastructure.database.engine import init_database
from formctl.infrastructure.database.schema import form_locks, form_versions

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy import Connection, Row
    from sqlalchemy.engine import Engine

    from formctl.config.settings import FormctlSettings
    from formctl.plugins.manager import PluginManager

logger = logging.getLogger(__name__)

type Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


def to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


# ---------------------------------------------------------------------------
# StoreTransaction — yielded to callers within transaction()
# ---------------------------------------------------------------------------


@dataclass
class StoreTransaction:
    """Active transaction context with data-access helpers."""

    conn: Connection

    # -- leases --------------------------------------------------------

    def lock_row(self, form_id: str) -> Row[Any] | None:
        return self.conn.execute(select(form_locks).where(form_locks.c.form_id == form_id)).first()

    def held_lock_rows(self) -> list[Row[Any]]:
        """Rows whose lease is set, expired or not."""
        return list(
            self.conn.execute(
                select(form_locks)
                .where(form_locks.c.holder_id.is_not(None))
                .order_by(form_locks.c.form_id)
            )
        )

    def save_lock(
        self,
        form_id: str,
        *,
        holder_id: str | None,
        locked_at: datetime | None,
        lock_expires_at: datetime | None,
        lock_version: int,
    ) -> None:
        """Insert or update the lease row of *form_id*."""
        values = {
            "holder_id": holder_id,
            "locked_at": to_iso(locked_at),
            "lock_expires_at": to_iso(lock_expires_at),
            "lock_version": lock_version,
        }
        if self.lock_row(form_id) is None:
            self.conn.execute(insert(form_locks).values(form_id=form_id, **values))
        else:
            self.conn.execute(
                update(form_locks).where(form_locks.c.form_id == form_id).values(**values)
            )

    def clear_lock(self, form_id: str) -> None:
        """Drop the lease but keep the row, preserving ``lock_version``."""
        self.conn.execute(
            update(form_locks)
            .where(form_locks.c.form_id == form_id)
            .values(holder_id=None, locked_at=None, lock_expires_at=None)
        )

    # -- versions ------------------------------------------------------

    def version_row(self, form_id: str, version_number: int) -> Row[Any] | None:
        return self.conn.execute(
            select(form_versions).where(
                form_versions.c.form_id == form_id,
                form_versions.c.version_number == version_number,
            )
        ).first()

    def version_rows(self, form_id: str, *, status: str | None = None) -> list[Row[Any]]:
        stmt = select(form_versions).where(form_versions.c.form_id == form_id)
        if status is not None:
            stmt = stmt.where(form_versions.c.status == status)
        return list(self.conn.execute(stmt.order_by(form_versions.c.version_number)))

    def insert_version(self, **values: Any) -> None:
        self.conn.execute(insert(form_versions).values(**values))

    def update_version(self, form_id: str, version_number: int, **values: Any) -> None:
        self.conn.execute(
            update(form_versions)
            .where(
                form_versions.c.form_id == form_id,
                form_versions.c.version_number == version_number,
            )
            .values(**values)
        )


# ---------------------------------------------------------------------------
# FormStore — the repository
# ---------------------------------------------------------------------------


class FormStore:
    """Repository encapsulating database access, time, caching and plugins.

    Constructed once at CLI startup from :class:`FormctlSettings`. Services
    receive the store via their :class:`BaseService` constructor.

    Args:
        settings: Resolved settings; the database lives in
            ``settings.store_dir``.
        clock: Authority clock for lease timestamps. Defaults to UTC now.
        in_memory: Use a private in-memory database instead of the file.
    """

    def __init__(
        self,
        settings: FormctlSettings,
        *,
        clock: Clock | None = None,
        in_memory: bool = False,
    ) -> None:
        self._settings = settings
        self._engine: Engine = init_database(None if in_memory else settings.store_dir)
        self._clock: Clock = clock or utc_now
        self._cache = QueryCache(settings.cache.ttl_seconds)
        self._plugin_manager: PluginManager | None = None

    @property
    def engine(self) -> Engine:
        """The underlying SQLAlchemy engine (for direct access when needed)."""
        return self._engine

    @property
    def settings(self) -> FormctlSettings:
        return self._settings

    @property
    def cache(self) -> QueryCache:
        return self._cache

    @property
    def plugin_manager(self) -> PluginManager | None:
        """The plugin manager (None if not initialized)."""
        return self._plugin_manager

    def now(self) -> datetime:
        """Current authority time (timezone-aware)."""
        return self._clock()

    def init_plugins(self, plugin_manager: PluginManager | None = None) -> PluginManager:
        """Attach a plugin manager, discovering entry-point plugins if none is given."""
        if plugin_manager is None:
            from formctl.plugins.manager import PluginManager

            plugin_manager = PluginManager()
            plugin_manager.discover_and_load()
        self._plugin_manager = plugin_manager
        return plugin_manager

    @contextmanager
    def transaction(self) -> Iterator[StoreTransaction]:
        """Atomic unit of work over the store.

        Commits when the block exits normally and rolls back on any
        exception. The caller is responsible for invalidating cache keys
        after a successful write.

        Usage::

            with store.transaction() as txn:
                txn.save_lock(form_id, ...)
        """
        with self._engine.begin() as conn:
            yield StoreTransaction(conn=conn)

    def dispose(self) -> None:
        self._engine.dispose()
