"""In-process query cache keyed by structured tuple keys.

Keys are tuples built by :class:`FormKeys`, ordered from general to
specific, so invalidating a prefix drops everything beneath it:

    ("forms",)                                  every form
    ("forms", form_id)                          one form's detail
    ("forms", form_id, "versions")              its version list
    ("forms", form_id, "versions", n)           one version
    ("forms", form_id, "lock")                  its lease status

Entries expire ``ttl_seconds`` after they are set. A TTL of zero disables
caching entirely.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

type CacheKey = tuple[Any, ...]


class FormKeys:
    """Key factory for form queries."""

    ROOT: CacheKey = ("forms",)

    @staticmethod
    def detail(form_id: str) -> CacheKey:
        return ("forms", form_id)

    @staticmethod
    def versions(form_id: str) -> CacheKey:
        return ("forms", form_id, "versions")

    @staticmethod
    def version(form_id: str, version_number: int) -> CacheKey:
        return ("forms", form_id, "versions", version_number)

    @staticmethod
    def lock_status(form_id: str) -> CacheKey:
        return ("forms", form_id, "lock")


form_keys = FormKeys()


@dataclass(frozen=True, slots=True)
class _Entry:
    value: Any
    expires_at: float


class QueryCache:
    """Explicit get/set/invalidate cache with per-entry expiry."""

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[CacheKey, _Entry] = {}

    @property
    def enabled(self) -> bool:
        return self._ttl > 0

    def get(self, key: CacheKey, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return default
        return entry.value

    def set(self, key: CacheKey, value: Any, *, ttl: float | None = None) -> None:
        lifetime = self._ttl if ttl is None else ttl
        if lifetime <= 0:
            return
        self._entries[key] = _Entry(value=value, expires_at=self._clock() + lifetime)

    def invalidate(self, prefix: CacheKey) -> int:
        """Drop every entry whose key starts with *prefix*. Returns the count."""
        size = len(prefix)
        doomed = [key for key in self._entries if key[:size] == prefix]
        for key in doomed:
            del self._entries[key]
        if doomed:
            logger.debug("cache invalidated %d entries under %r", len(doomed), prefix)
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return isinstance(key, tuple) and self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        return len(self._entries)


_MISSING = object()
