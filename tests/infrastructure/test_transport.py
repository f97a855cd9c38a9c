"""Tests for HttpLockTransport against a mocked authority."""

from __future__ import annotations

import json
from collections.abc import Callable

import httpx
import pytest

from formctl.domain.locks import FormLock, LockConflict, LockGrant, LockLost, LockReleased
from formctl.infrastructure.transport import HttpLockTransport, LockTransportError

BASE = "http://locks.test/api"

type Handler = Callable[[httpx.Request], httpx.Response]


def _transport(handler: Handler) -> HttpLockTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpLockTransport(BASE + "/", client=client, headers={"X-Actor": "alice"})


class TestAcquire:
    @pytest.mark.asyncio
    async def test_grant(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "lock_acquired": True,
                    "lock_expires_at": "2025-01-01T12:30:00+00:00",
                    "lock_version": 4,
                },
            )

        outcome = await _transport(handler).acquire("f", "alice")
        assert isinstance(outcome, LockGrant)
        assert outcome.holder_id == "alice"
        assert outcome.lock_version == 4
        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == f"{BASE}/forms/f/lock/acquire"
        assert json.loads(request.content) == {"form_id": "f", "actor_id": "alice"}
        assert request.headers["X-Actor"] == "alice"

    @pytest.mark.asyncio
    async def test_conflict(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                409, json={"holder_id": "bob", "lock_expires_at": "2025-01-01T12:30:00+00:00"}
            )

        outcome = await _transport(handler).acquire("f", "alice")
        assert isinstance(outcome, LockConflict)
        assert outcome.holder_id == "bob"

    @pytest.mark.asyncio
    async def test_malformed_grant(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"lock_acquired": True})

        with pytest.raises(LockTransportError, match="Malformed"):
            await _transport(handler).acquire("f", "alice")

    @pytest.mark.asyncio
    async def test_server_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="busy")

        with pytest.raises(LockTransportError, match="HTTP 503"):
            await _transport(handler).acquire("f", "alice")

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(LockTransportError, match="unreachable"):
            await _transport(handler).acquire("f", "alice")


class TestRenewRelease:
    @pytest.mark.asyncio
    async def test_renew_lost(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert json.loads(request.content)["lock_version"] == 2
            return httpx.Response(410, json={"reason": "expired"})

        outcome = await _transport(handler).renew("f", "alice", 2)
        assert isinstance(outcome, LockLost)
        assert outcome.reason == "expired"

    @pytest.mark.asyncio
    async def test_release(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(204)

        assert isinstance(await _transport(handler).release("f", "alice"), LockReleased)

    @pytest.mark.asyncio
    async def test_release_not_holder(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(409, text="no")

        outcome = await _transport(handler).release("f", "alice")
        assert isinstance(outcome, LockLost)
        assert outcome.reason == "not the holder"

    @pytest.mark.asyncio
    async def test_status(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "GET"
            return httpx.Response(
                200, json={"is_locked": True, "holder_id": "bob", "lock_version": 7}
            )

        status = await _transport(handler).status("f")
        assert isinstance(status, FormLock)
        assert status.holder_id == "bob"
        assert status.lock_version == 7
