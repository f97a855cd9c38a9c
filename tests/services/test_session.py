"""Tests for EditingSession lease gating, history and commit."""

from __future__ import annotations

import asyncio
from collections.abc import Iterator, Mapping
from datetime import timedelta
from pathlib import Path
from typing import Any

import pytest

from formctl.config.settings import FormctlSettings
from formctl.domain.commands import CommandType
from formctl.domain.definition import FormDefinition
from formctl.domain.locks import (
    FormLock,
    LockConflict,
    LockGrant,
    LockLost,
    LockReleased,
    LockUnavailable,
)
from formctl.engine.validators import ValidatorRegistry
from formctl.infrastructure.store import FormStore
from formctl.infrastructure.transport import LockTransportError
from formctl.plugins.hookspecs import hookimpl
from formctl.plugins.manager import PluginManager
from formctl.services.lock_client import LocalLockTransport, LockClient
from formctl.services.locking import LockService
from formctl.services.session import EditingSession
from formctl.services.versions import VersionService
from tests.conftest import EPOCH, FakeClock


class Recorder:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    @hookimpl
    def lock_lost(self, form_id: str, actor_id: str, reason: str) -> None:
        self.events.append(("lock_lost", {"form_id": form_id, "reason": reason}))

    @hookimpl
    def post_commit(
        self, form_id: str, actor_id: str, version_number: int | None, stats: dict[str, Any]
    ) -> None:
        self.events.append(("post_commit", {"version_number": version_number, **stats}))


class DownTransport:
    async def acquire(self, form_id: str, actor_id: str) -> LockGrant:
        raise LockTransportError("connection refused")


class CountingTransport:
    """Local transport that counts renewals."""

    def __init__(self, inner: LocalLockTransport) -> None:
        self.inner = inner
        self.renewals = 0

    async def acquire(self, form_id: str, actor_id: str) -> LockGrant | LockConflict:
        return await self.inner.acquire(form_id, actor_id)

    async def renew(self, form_id: str, actor_id: str, lock_version: int) -> LockGrant | LockLost:
        self.renewals += 1
        return await self.inner.renew(form_id, actor_id, lock_version)

    async def release(self, form_id: str, actor_id: str) -> LockReleased | LockLost:
        return await self.inner.release(form_id, actor_id)

    async def status(self, form_id: str) -> FormLock:
        return await self.inner.status(form_id)


@pytest.fixture
def locks(store: FormStore) -> LockService:
    return LockService(store)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def session(
    store: FormStore,
    locks: LockService,
    clock: FakeClock,
    order_form: FormDefinition,
    recorder: Recorder,
) -> EditingSession:
    pm = PluginManager()
    pm.register_plugin(recorder)
    return EditingSession(
        "order",
        "alice",
        order_form,
        LockClient(LocalLockTransport(locks)),
        versions=VersionService(store),
        plugin_manager=pm,
        clock=clock,
    )


class TestOpen:
    @pytest.mark.asyncio
    async def test_grant_enables_editing(self, session: EditingSession) -> None:
        outcome = await session.open()
        assert isinstance(outcome, LockGrant)
        assert not session.is_read_only
        assert session.lease_valid

    @pytest.mark.asyncio
    async def test_conflict_is_read_only(
        self, session: EditingSession, locks: LockService
    ) -> None:
        locks.acquire("order", "bob")
        outcome = await session.open()
        assert isinstance(outcome, LockConflict)
        assert session.is_read_only
        assert session.conflict.holder_id == "bob"
        assert session.notifications == [
            "order is being edited by bob until 2025-01-01T12:30:00+00:00"
        ]
        result = session.record(CommandType.UPDATE_TITLE, "Order", "Orders")
        assert result.error.code == "READ_ONLY"

    @pytest.mark.asyncio
    async def test_retry_after_release(
        self, session: EditingSession, locks: LockService
    ) -> None:
        locks.acquire("order", "bob")
        await session.open()
        locks.release("order", "bob")
        assert isinstance(await session.open(), LockGrant)
        assert session.conflict is None

    @pytest.mark.asyncio
    async def test_unavailable_is_read_only(self, order_form: FormDefinition) -> None:
        session = EditingSession("order", "alice", order_form, LockClient(DownTransport()))
        outcome = await session.open()
        assert isinstance(outcome, LockUnavailable)
        assert session.is_read_only
        assert session.notifications == ["Lock service unavailable: connection refused"]


class TestHeartbeat:
    @pytest.mark.asyncio
    async def test_renew_extends_lease(self, session: EditingSession, clock: FakeClock) -> None:
        await session.open()
        clock.advance(1000)
        outcome = await session.heartbeat()
        assert isinstance(outcome, LockGrant)
        clock.advance(1000)
        assert session.lease_valid

    @pytest.mark.asyncio
    async def test_lost_lease_demotes(
        self,
        session: EditingSession,
        locks: LockService,
        clock: FakeClock,
        recorder: Recorder,
    ) -> None:
        await session.open()
        clock.advance(1801)
        locks.acquire("order", "bob")
        outcome = await session.heartbeat()
        assert isinstance(outcome, LockLost)
        assert session.is_read_only
        assert session.notifications[-1] == (
            "Edit lock lost: not the holder. The form is now read-only."
        )
        assert recorder.events == [("lock_lost", {"form_id": "order", "reason": "not the holder"})]
        result = await session.commit()
        assert result.error.code == "READ_ONLY"

    @pytest.mark.asyncio
    async def test_without_lease(self, session: EditingSession) -> None:
        outcome = await session.heartbeat()
        assert isinstance(outcome, LockLost)
        assert outcome.reason == "no lease held"


class TestEdits:
    @pytest.mark.asyncio
    async def test_undo_redo(self, session: EditingSession) -> None:
        await session.open()
        session.record(CommandType.UPDATE_TITLE, "Order", "Orders")
        assert session.definition.title == "Orders"
        undone = session.undo()
        assert undone.data == {
            "changed": True,
            "current_index": 0,
            "can_undo": False,
            "can_redo": True,
        }
        assert session.definition.title == "Order"
        assert session.undo().data["changed"] is False
        session.redo()
        assert session.state.title == "Orders"

    @pytest.mark.asyncio
    async def test_edits_feed_evaluation(self, session: EditingSession) -> None:
        await session.open()
        fields = [f for f in session.state.fields if f.id != "state"]
        session.record(CommandType.REMOVE_FIELD, session.state.fields, fields)
        result = session.evaluate({"country": "US"})
        assert "state" not in result.visible_fields

    @pytest.mark.asyncio
    async def test_validate(self, session: EditingSession) -> None:
        result = await session.validate({"country": "US", "quantity": 20})
        assert set(result.blocking_fields) == {"name", "state", "quantity"}


class TestCommit:
    @pytest.mark.asyncio
    async def test_commit_saves_version(
        self, session: EditingSession, store: FormStore, recorder: Recorder
    ) -> None:
        await session.open()
        session.record(CommandType.UPDATE_TITLE, "Order", "Orders")
        result = await session.commit("Rename")
        assert result.ok
        assert result.data["version_number"] == 1
        assert result.data["version"]["title"] == "Orders"
        assert result.data["version"]["change_summary"] == "Rename"
        assert result.data["stats"] == {"commands": 1, "fields": 7}
        assert recorder.events[-1] == (
            "post_commit",
            {"version_number": 1, "commands": 1, "fields": 7},
        )
        saved = VersionService(store).get_version("order", 1)
        assert saved.data["version"]["created_by"] == "alice"

    @pytest.mark.asyncio
    async def test_expired_lease_blocks_commit(
        self, session: EditingSession, clock: FakeClock, store: FormStore
    ) -> None:
        await session.open()
        clock.advance(1800)
        result = await session.commit()
        assert result.error.code == "LOCK_EXPIRED"
        assert result.error.detail["lock_expires_at"] == "2025-01-01T12:30:00+00:00"
        assert session.is_read_only
        assert VersionService(store).list_versions("order").data["count"] == 0

    @pytest.mark.asyncio
    async def test_commit_without_store(
        self, order_form: FormDefinition, locks: LockService, clock: FakeClock
    ) -> None:
        session = EditingSession(
            "order", "alice", order_form, LockClient(LocalLockTransport(locks)), clock=clock
        )
        await session.open()
        result = await session.commit()
        assert result.ok
        assert result.data["version_number"] is None

    @pytest.mark.asyncio
    async def test_close_releases(self, session: EditingSession, locks: LockService) -> None:
        await session.open()
        result = await session.close()
        assert result.data == {"form_id": "order", "released": True}
        assert session.is_read_only
        assert locks.status("order").data["is_locked"] is False


@pytest.fixture
def signup_form() -> FormDefinition:
    return FormDefinition.model_validate(
        {
            "title": "Signup",
            "fields": [{"id": "username", "type": "text", "label": "Username"}],
            "validation_rules": [
                {
                    "id": "unique",
                    "field_id": "username",
                    "rule_type": "async",
                    "rule_config": {"validator": "unique"},
                    "error_message": "Username taken",
                }
            ],
        }
    )


@pytest.fixture
def slow_taken_registry() -> ValidatorRegistry:
    """``unique`` answers "free" at once and hangs on "taken"."""
    registry = ValidatorRegistry()

    async def unique(value: Any, config: Mapping[str, Any]) -> bool:
        if value == "taken":
            await asyncio.sleep(10)
        return value != "taken"

    registry.register_async("unique", unique)
    return registry


class TestConcurrentValidate:
    @pytest.mark.asyncio
    async def test_newer_call_supersedes_older(
        self,
        signup_form: FormDefinition,
        locks: LockService,
        slow_taken_registry: ValidatorRegistry,
    ) -> None:
        session = EditingSession(
            "signup",
            "alice",
            signup_form,
            LockClient(LocalLockTransport(locks)),
            registry=slow_taken_registry,
        )
        older = asyncio.create_task(session.validate({"username": "taken"}))
        await asyncio.sleep(0)
        newer = await session.validate({"username": "free"})
        stale = await older
        assert newer.is_valid
        assert newer.pending == []
        assert stale.pending == ["username:unique"]
        assert "username" not in stale.errors
        await session.close()

    @pytest.mark.asyncio
    async def test_close_cancels_in_flight_checks(
        self,
        signup_form: FormDefinition,
        locks: LockService,
        slow_taken_registry: ValidatorRegistry,
    ) -> None:
        session = EditingSession(
            "signup",
            "alice",
            signup_form,
            LockClient(LocalLockTransport(locks)),
            registry=slow_taken_registry,
        )
        pending = asyncio.create_task(session.validate({"username": "taken"}))
        await asyncio.sleep(0)
        await session.close()
        result = await pending
        assert result.pending == ["username:unique"]


class TestAutoRenew:
    @pytest.fixture
    def transport(self, locks: LockService) -> CountingTransport:
        return CountingTransport(LocalLockTransport(locks))

    def _session(
        self,
        order_form: FormDefinition,
        transport: CountingTransport,
        clock: FakeClock,
        interval: float,
        plugin_manager: PluginManager | None = None,
    ) -> EditingSession:
        return EditingSession(
            "order",
            "alice",
            order_form,
            LockClient(transport),
            plugin_manager=plugin_manager,
            clock=clock,
            renew_interval=interval,
        )

    @pytest.mark.asyncio
    async def test_renews_in_background(
        self, order_form: FormDefinition, transport: CountingTransport, clock: FakeClock
    ) -> None:
        session = self._session(order_form, transport, clock, 0.01)
        await session.open()
        await asyncio.sleep(0.05)
        assert transport.renewals >= 1
        assert session.lease_valid
        await session.close()
        renewals = transport.renewals
        await asyncio.sleep(0.03)
        assert transport.renewals == renewals

    @pytest.mark.asyncio
    async def test_stops_when_lease_lost(
        self,
        order_form: FormDefinition,
        transport: CountingTransport,
        locks: LockService,
        clock: FakeClock,
        recorder: Recorder,
    ) -> None:
        pm = PluginManager()
        pm.register_plugin(recorder)
        session = self._session(order_form, transport, clock, 0.01, pm)
        await session.open()
        clock.advance(1801)
        locks.acquire("order", "bob")
        await asyncio.sleep(0.05)
        assert transport.renewals == 1
        assert session.is_read_only
        assert session._renew_task is not None
        assert session._renew_task.done()
        assert recorder.events == [("lock_lost", {"form_id": "order", "reason": "not the holder"})]

    @pytest.mark.asyncio
    async def test_close_cancels_renewal(
        self, order_form: FormDefinition, transport: CountingTransport, clock: FakeClock
    ) -> None:
        session = self._session(order_form, transport, clock, 60)
        await session.open()
        task = session._renew_task
        assert task is not None
        assert not task.done()
        await session.close()
        assert task.cancelled()
        assert session._renew_task is None

    @pytest.mark.asyncio
    async def test_no_renewal_without_grant(
        self,
        order_form: FormDefinition,
        transport: CountingTransport,
        locks: LockService,
        clock: FakeClock,
    ) -> None:
        locks.acquire("order", "bob")
        session = self._session(order_form, transport, clock, 0.01)
        await session.open()
        assert session._renew_task is None

    def test_rejects_non_positive_interval(
        self, order_form: FormDefinition, transport: CountingTransport, clock: FakeClock
    ) -> None:
        with pytest.raises(ValueError, match="renew_interval"):
            self._session(order_form, transport, clock, 0)


class TestFromSettings:
    @pytest.fixture
    def configured_store(self, tmp_path: Path, clock: FakeClock) -> Iterator[FormStore]:
        settings = FormctlSettings(
            project_root=tmp_path,
            lock={"ttl_seconds": 60, "renew_interval_seconds": 20},
            history={"max_size": 2},
            validation={"required_message": "Needed"},
        )
        s = FormStore(settings, clock=clock, in_memory=True)
        yield s
        s.dispose()

    @pytest.mark.asyncio
    async def test_settings_drive_session(
        self, configured_store: FormStore, order_form: FormDefinition
    ) -> None:
        session = EditingSession.from_settings("order", "alice", order_form, configured_store)
        assert session.history.max_size == 2
        assert session._renew_interval == 20

        grant = await session.open()
        assert isinstance(grant, LockGrant)
        assert grant.lock_expires_at == EPOCH + timedelta(seconds=60)
        assert session._renew_task is not None

        for title in ("A", "B", "C"):
            session.record(CommandType.UPDATE_TITLE, session.state.title, title)
        assert len(session.history) == 2

        result = await session.validate({})
        assert result.errors["name"][0].message == "Needed"

        committed = await session.commit()
        assert committed.data["version_number"] == 1
        await session.close()
        assert session._renew_task is None
