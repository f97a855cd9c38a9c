"""Tests for per-form version number allocation."""

from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.engine import Engine

from formctl.infrastructure.database.counters import next_version_number
from formctl.infrastructure.database.schema import version_counters


class TestNextVersionNumber:
    def test_starts_at_one_and_increments(self, db_engine: Engine) -> None:
        with db_engine.begin() as conn:
            assert [next_version_number(conn, "f") for _ in range(3)] == [1, 2, 3]

    def test_independent_per_form(self, db_engine: Engine) -> None:
        with db_engine.begin() as conn:
            next_version_number(conn, "f")
            next_version_number(conn, "f")
            assert next_version_number(conn, "g") == 1

    def test_counter_persisted(self, db_engine: Engine) -> None:
        with db_engine.begin() as conn:
            next_version_number(conn, "f")
        with db_engine.begin() as conn:
            row = conn.execute(
                select(version_counters.c.next_value).where(version_counters.c.form_id == "f")
            ).one()
            assert row.next_value == 2

    def test_rolled_back_claim_is_reissued(self, db_engine: Engine) -> None:
        with pytest.raises(RuntimeError), db_engine.begin() as conn:
            next_version_number(conn, "f")
            raise RuntimeError("insert failed")
        with db_engine.begin() as conn:
            assert next_version_number(conn, "f") == 1

    def test_empty_form_id(self, db_engine: Engine) -> None:
        with db_engine.begin() as conn, pytest.raises(ValueError):
            next_version_number(conn, "")
