"""Tests for plugin registration and hook dispatch."""

from __future__ import annotations

from typing import Any

import pytest

from formctl.domain.fields import FormSchema
from formctl.infrastructure.store import FormStore
from formctl.plugins import PluginManager, hookimpl
from formctl.services.locking import LockService
from formctl.services.versions import VersionService


class Recorder:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []

    @hookimpl
    def post_lock_acquired(
        self, form_id: str, holder_id: str, lock_version: int, lock_expires_at: str
    ) -> None:
        self.calls.append(("post_lock_acquired", {"form_id": form_id, "version": lock_version}))

    @hookimpl
    def post_version_created(
        self, form_id: str, version_number: int, version_id: str, created_by: str | None
    ) -> None:
        self.calls.append(("post_version_created", {"id": version_id}))


class Broken:
    @hookimpl
    def post_lock_acquired(
        self, form_id: str, holder_id: str, lock_version: int, lock_expires_at: str
    ) -> None:
        raise RuntimeError("plugin bug")


class TestPluginManager:
    def test_register_and_list(self) -> None:
        pm = PluginManager()
        pm.register_plugin(Recorder(), name="recorder")
        assert "recorder" in pm.list_plugin_names()
        assert not pm.is_loaded

    def test_discover_without_entry_points(self) -> None:
        pm = PluginManager()
        pm.discover_and_load()
        assert pm.is_loaded

    def test_unregister(self) -> None:
        pm = PluginManager()
        plugin = Recorder()
        pm.register_plugin(plugin)
        pm.unregister(plugin)
        assert plugin not in pm.get_plugins()

    def test_normalizes_registered_classes(self) -> None:
        pm = PluginManager()
        pm._pm.register(Recorder, name="cls")
        pm._normalize_plugin_instances()
        assert all(isinstance(p, Recorder) for p in pm.get_plugins())


class TestDispatch:
    def test_hooks_fire_from_services(self, store: FormStore) -> None:
        recorder = Recorder()
        pm = PluginManager()
        pm.register_plugin(recorder)
        store.init_plugins(pm)
        LockService(store).acquire("f", "alice")
        VersionService(store).create_version("f", FormSchema(), "Form")
        assert recorder.calls == [
            ("post_lock_acquired", {"form_id": "f", "version": 1}),
            ("post_version_created", {"id": "f@v1"}),
        ]

    def test_failing_hook_is_warning(self, store: FormStore) -> None:
        pm = PluginManager()
        pm.register_plugin(Broken())
        store.init_plugins(pm)
        result = LockService(store).acquire("f", "alice")
        assert result.ok
        assert result.warnings == ["Hook dispatch failed for post_lock_acquired"]
        assert LockService(store).status("f").data["holder_id"] == "alice"

    def test_no_plugins_no_warnings(self, store: FormStore) -> None:
        assert LockService(store).acquire("f", "alice").warnings == []


class TestDirectDispatch:
    def test_hook_names(self) -> None:
        assert PluginManager().hook_names == [
            "lock_lost",
            "post_commit",
            "post_lock_acquired",
            "post_version_created",
        ]

    def test_dispatch_returns_warning(self) -> None:
        pm = PluginManager()
        pm.register_plugin(Broken())
        payload = {"form_id": "f", "holder_id": "a", "lock_version": 1, "lock_expires_at": "x"}
        assert pm.dispatch("post_lock_acquired", payload) == (
            "Hook dispatch failed for post_lock_acquired"
        )

    def test_dispatch_unknown_hook(self) -> None:
        with pytest.raises(ValueError, match="Unknown hook"):
            PluginManager().dispatch("post_nothing", {})
