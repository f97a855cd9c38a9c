"""Tests for FormStore transactions and lease/version helpers."""

from __future__ import annotations

from pathlib import Path

import pytest

from formctl.config.settings import FormctlSettings
from formctl.infrastructure.store import FormStore, from_iso, to_iso
from tests.conftest import EPOCH, FakeClock


class TestTransaction:
    def test_commit(self, store: FormStore) -> None:
        with store.transaction() as txn:
            txn.save_lock(
                "f", holder_id="alice", locked_at=EPOCH, lock_expires_at=EPOCH, lock_version=1
            )
        with store.transaction() as txn:
            row = txn.lock_row("f")
        assert row.holder_id == "alice"
        assert from_iso(row.locked_at) == EPOCH

    def test_rollback_on_error(self, store: FormStore) -> None:
        with pytest.raises(RuntimeError), store.transaction() as txn:
            txn.save_lock(
                "f", holder_id="alice", locked_at=EPOCH, lock_expires_at=EPOCH, lock_version=1
            )
            raise RuntimeError("boom")
        with store.transaction() as txn:
            assert txn.lock_row("f") is None

    def test_clear_lock_keeps_version(self, store: FormStore) -> None:
        with store.transaction() as txn:
            txn.save_lock(
                "f", holder_id="alice", locked_at=EPOCH, lock_expires_at=EPOCH, lock_version=4
            )
            txn.clear_lock("f")
            row = txn.lock_row("f")
            assert row.holder_id is None
            assert row.lock_version == 4
            assert txn.held_lock_rows() == []


class TestStore:
    def test_clock(self, store: FormStore, clock: FakeClock) -> None:
        assert store.now() == EPOCH
        clock.advance(5)
        assert (store.now() - EPOCH).total_seconds() == 5

    def test_file_backed(self, tmp_path: Path) -> None:
        settings = FormctlSettings(project_root=tmp_path)
        store = FormStore(settings)
        try:
            assert (tmp_path / ".formctl" / "formctl.db").is_file()
            assert store.plugin_manager is None
        finally:
            store.dispose()

    def test_init_plugins_discovers(self, store: FormStore) -> None:
        pm = store.init_plugins()
        assert pm.is_loaded
        assert store.plugin_manager is pm

    def test_iso_helpers(self) -> None:
        assert to_iso(None) is None
        assert from_iso(None) is None
        assert from_iso(to_iso(EPOCH)) == EPOCH
