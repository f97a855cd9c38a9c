"""Lock transports — how a lock client reaches the lease authority.

A transport performs exactly one request per call and reports the
authority's answer as a typed outcome. Failing to get an answer at all
(connection errors, unexpected status codes, malformed payloads) raises
:class:`LockTransportError`; the client decides whether to retry.

HTTP contract (``HttpLockTransport``)::

    POST {base}/forms/{form_id}/lock/acquire   {form_id, actor_id}
    POST {base}/forms/{form_id}/lock/renew     {form_id, actor_id, lock_version}
    POST {base}/forms/{form_id}/lock/release   {form_id, actor_id}
    GET  {base}/forms/{form_id}/lock

    200 -> {lock_acquired, lock_expires_at, lock_version[, holder_id]}
    409 on acquire -> {holder_id, lock_expires_at}
    409/410 on renew or release -> the caller's lease is gone
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from formctl.domain.locks import (
    FormLock,
    LockConflict,
    LockGrant,
    LockLost,
    LockReleased,
)

logger = logging.getLogger(__name__)

_LOST_STATUSES = frozenset({409, 410})


class LockTransportError(Exception):
    """The lock authority could not be reached or answered unintelligibly."""


class LockTransport(Protocol):
    """Async interface to a lease authority."""

    async def acquire(self, form_id: str, actor_id: str) -> LockGrant | LockConflict: ...

    async def renew(
        self, form_id: str, actor_id: str, lock_version: int
    ) -> LockGrant | LockLost: ...

    async def release(self, form_id: str, actor_id: str) -> LockReleased | LockLost: ...

    async def status(self, form_id: str) -> FormLock: ...


class HttpLockTransport:
    """Speaks the lock JSON contract to a remote authority over httpx.

    Args:
        base_url: Authority root, e.g. ``https://forms.example.com/api``.
        client: Shared ``httpx.AsyncClient``. When omitted a client is
            opened per request.
        timeout: Per-request timeout in seconds for self-opened clients.
    """

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client
        self._timeout = timeout
        self._headers = headers or {}

    def _url(self, form_id: str, action: str | None = None) -> str:
        path = f"{self._base_url}/forms/{form_id}/lock"
        return f"{path}/{action}" if action else path

    async def _send(self, method: str, url: str, payload: dict[str, Any] | None) -> httpx.Response:
        try:
            if self._client is not None:
                return await self._client.request(
                    method, url, json=payload, headers=self._headers
                )
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                return await client.request(method, url, json=payload, headers=self._headers)
        except httpx.HTTPError as exc:
            logger.debug("lock request %s %s failed: %s", method, url, exc)
            msg = f"Lock authority unreachable: {exc}"
            raise LockTransportError(msg) from exc

    @staticmethod
    def _body(response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            msg = f"Lock authority returned non-JSON body (HTTP {response.status_code})"
            raise LockTransportError(msg) from exc
        if not isinstance(body, dict):
            msg = f"Lock authority returned unexpected body (HTTP {response.status_code})"
            raise LockTransportError(msg)
        return body

    @staticmethod
    def _unexpected(response: httpx.Response) -> LockTransportError:
        return LockTransportError(f"Lock authority answered HTTP {response.status_code}")

    def _grant(self, form_id: str, actor_id: str, body: dict[str, Any]) -> LockGrant:
        try:
            return LockGrant(
                form_id=form_id,
                holder_id=body.get("holder_id") or actor_id,
                lock_acquired=bool(body.get("lock_acquired", True)),
                lock_expires_at=body["lock_expires_at"],
                lock_version=body["lock_version"],
            )
        except (KeyError, ValidationError) as exc:
            msg = f"Malformed lock grant: {exc}"
            raise LockTransportError(msg) from exc

    @staticmethod
    def _reason(response: httpx.Response, default: str) -> str:
        try:
            body = response.json()
        except ValueError:
            return default
        if isinstance(body, dict):
            for key in ("reason", "message", "detail", "error"):
                value = body.get(key)
                if isinstance(value, str) and value:
                    return value
        return default

    async def acquire(self, form_id: str, actor_id: str) -> LockGrant | LockConflict:
        response = await self._send(
            "POST", self._url(form_id, "acquire"), {"form_id": form_id, "actor_id": actor_id}
        )
        if response.status_code == 409:
            body = self._body(response)
            try:
                return LockConflict(
                    form_id=form_id,
                    holder_id=body["holder_id"],
                    lock_expires_at=body["lock_expires_at"],
                )
            except (KeyError, ValidationError) as exc:
                msg = f"Malformed lock conflict: {exc}"
                raise LockTransportError(msg) from exc
        if response.status_code != 200:
            raise self._unexpected(response)
        return self._grant(form_id, actor_id, self._body(response))

    async def renew(self, form_id: str, actor_id: str, lock_version: int) -> LockGrant | LockLost:
        response = await self._send(
            "POST",
            self._url(form_id, "renew"),
            {"form_id": form_id, "actor_id": actor_id, "lock_version": lock_version},
        )
        if response.status_code in _LOST_STATUSES:
            return LockLost(form_id=form_id, reason=self._reason(response, "lock lost"))
        if response.status_code != 200:
            raise self._unexpected(response)
        return self._grant(form_id, actor_id, self._body(response))

    async def release(self, form_id: str, actor_id: str) -> LockReleased | LockLost:
        response = await self._send(
            "POST", self._url(form_id, "release"), {"form_id": form_id, "actor_id": actor_id}
        )
        if response.status_code in _LOST_STATUSES:
            return LockLost(
                form_id=form_id, reason=self._reason(response, "not the holder")
            )
        if response.status_code not in (200, 204):
            raise self._unexpected(response)
        return LockReleased(form_id=form_id)

    async def status(self, form_id: str) -> FormLock:
        response = await self._send("GET", self._url(form_id), None)
        if response.status_code != 200:
            raise self._unexpected(response)
        body = self._body(response)
        try:
            return FormLock.model_validate({"form_id": form_id, **body})
        except ValidationError as exc:
            msg = f"Malformed lock status: {exc}"
            raise LockTransportError(msg) from exc
