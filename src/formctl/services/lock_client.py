"""LockClient — the editor-side view of the lease authority.

Every call is bounded by ``asyncio.wait_for(timeout)`` and retried a
limited number of times (once by default) on timeout or transport
failure. When all attempts fail the call reports :class:`LockUnavailable`
instead of raising, so the caller can degrade to read-only.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, TypeVar

from formctl.domain.locks import (
    FormLock,
    LockConflict,
    LockGrant,
    LockLost,
    LockReleased,
    LockUnavailable,
)
from formctl.infrastructure.transport import HttpLockTransport, LockTransport, LockTransportError
from formctl.services.locking import LockService

if TYPE_CHECKING:
    from formctl.infrastructure.store import FormStore
    from formctl.services.result import ServiceResult

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


class LocalLockTransport:
    """Adapts an in-process :class:`LockService` to the transport interface."""

    def __init__(self, service: LockService) -> None:
        self._service = service

    @staticmethod
    def _unexpected(result: ServiceResult) -> LockTransportError:
        message = result.error.message if result.error else "unknown error"
        return LockTransportError(f"{result.op} failed: {message}")

    async def acquire(self, form_id: str, actor_id: str) -> LockGrant | LockConflict:
        result = self._service.acquire(form_id, actor_id)
        if result.ok:
            return LockGrant.model_validate(result.data)
        if result.error is not None and result.error.code == "LOCKED":
            return LockConflict(
                form_id=form_id,
                holder_id=result.error.detail["holder_id"],
                lock_expires_at=result.error.detail["lock_expires_at"],
            )
        raise self._unexpected(result)

    async def renew(self, form_id: str, actor_id: str, lock_version: int) -> LockGrant | LockLost:
        result = self._service.renew(form_id, actor_id, lock_version)
        if result.ok:
            return LockGrant.model_validate(result.data)
        if result.error is not None and result.error.code == "LOCK_LOST":
            return LockLost(form_id=form_id, reason=result.error.detail.get("reason", "lock lost"))
        raise self._unexpected(result)

    async def release(self, form_id: str, actor_id: str) -> LockReleased | LockLost:
        result = self._service.release(form_id, actor_id)
        if result.ok:
            return LockReleased(form_id=form_id)
        if result.error is not None and result.error.code == "NOT_HOLDER":
            return LockLost(form_id=form_id, reason="not the holder")
        raise self._unexpected(result)

    async def status(self, form_id: str) -> FormLock:
        result = self._service.status(form_id)
        return FormLock.model_validate(result.data)


class LockClient:
    """Timeout- and retry-bounded access to a :class:`LockTransport`.

    Args:
        transport: Where lock requests go.
        timeout: Seconds allowed per attempt.
        retries: Extra attempts after the first one fails.
    """

    def __init__(
        self,
        transport: LockTransport,
        *,
        timeout: float = 10.0,
        retries: int = 1,
    ) -> None:
        if retries < 0:
            msg = f"retries must be >= 0, got {retries}"
            raise ValueError(msg)
        self._transport = transport
        self._timeout = timeout
        self._retries = retries

    @property
    def transport(self) -> LockTransport:
        return self._transport

    async def _call(
        self,
        form_id: str,
        op: str,
        request: Callable[[], Awaitable[_T]],
    ) -> _T | LockUnavailable:
        attempts = self._retries + 1
        reason = "no attempt made"
        for attempt in range(1, attempts + 1):
            try:
                return await asyncio.wait_for(request(), self._timeout)
            except TimeoutError:
                reason = f"{op} timed out after {self._timeout}s"
            except LockTransportError as exc:
                reason = str(exc)
            logger.debug("lock %s attempt %d/%d failed: %s", op, attempt, attempts, reason)
        logger.warning("lock %s on %s unavailable: %s", op, form_id, reason)
        return LockUnavailable(form_id=form_id, reason=reason, attempts=attempts)

    async def acquire(
        self, form_id: str, actor_id: str
    ) -> LockGrant | LockConflict | LockUnavailable:
        return await self._call(
            form_id, "acquire", lambda: self._transport.acquire(form_id, actor_id)
        )

    async def renew(
        self, form_id: str, actor_id: str, lock_version: int
    ) -> LockGrant | LockLost | LockUnavailable:
        return await self._call(
            form_id, "renew", lambda: self._transport.renew(form_id, actor_id, lock_version)
        )

    async def release(
        self, form_id: str, actor_id: str
    ) -> LockReleased | LockLost | LockUnavailable:
        return await self._call(
            form_id, "release", lambda: self._transport.release(form_id, actor_id)
        )

    async def status(self, form_id: str) -> FormLock | LockUnavailable:
        return await self._call(form_id, "status", lambda: self._transport.status(form_id))


def build_lock_client(store: FormStore) -> LockClient:
    """Create a client from ``[lock]`` settings.

    Uses the remote authority at ``server_url`` when configured, otherwise
    a :class:`LockService` over *store*.
    """
    config = store.settings.lock
    transport: LockTransport
    if config.server_url:
        transport = HttpLockTransport(config.server_url, timeout=config.timeout_seconds)
    else:
        transport = LocalLockTransport(LockService(store, ttl_seconds=config.ttl_seconds))
    return LockClient(transport, timeout=config.timeout_seconds, retries=config.retries)
