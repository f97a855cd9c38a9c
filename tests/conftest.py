"""Shared pytest fixtures for formctl tests."""

from __future__ import annotations

import json
from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from click.testing import CliRunner
from sqlalchemy.engine import Engine

from formctl.config.settings import FormctlSettings
from formctl.domain.definition import FormDefinition
from formctl.infrastructure.database.engine import init_database
from formctl.infrastructure.store import FormStore

EPOCH = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


class FakeClock:
    """Authority clock that only moves when told to."""

    def __init__(self, start: datetime = EPOCH) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(tmp_path: Path) -> FormctlSettings:
    return FormctlSettings(project_root=tmp_path)


@pytest.fixture
def store(settings: FormctlSettings, clock: FakeClock) -> Iterator[FormStore]:
    """In-memory store driven by the fake clock."""
    s = FormStore(settings, clock=clock, in_memory=True)
    try:
        yield s
    finally:
        s.dispose()


@pytest.fixture
def db_engine(tmp_path: Path) -> Iterator[Engine]:
    """Initialized SQLite engine with all tables created."""
    engine = init_database(tmp_path)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def _isolated_project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Run the CLI from an empty temp directory with no config overrides.

    Use via ``@pytest.mark.usefixtures("_isolated_project")`` on command
    test classes.
    """
    monkeypatch.delenv("FORMCTL_CONFIG", raising=False)
    monkeypatch.delenv("FORMCTL_ACTOR", raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def order_form() -> FormDefinition:
    """A small order form exercising visibility, required and calculated rules."""
    return FormDefinition.model_validate(
        {
            "title": "Order",
            "description": "Place an order",
            "fields": [
                {"id": "name", "type": "text", "label": "Name", "required": True},
                {"id": "email", "type": "email", "label": "Email"},
                {"id": "country", "type": "select", "label": "Country"},
                {"id": "state", "type": "text", "label": "State"},
                {"id": "price", "type": "number", "label": "Price"},
                {"id": "quantity", "type": "number", "label": "Quantity"},
                {"id": "total", "type": "number", "label": "Total"},
            ],
            "conditional_rules": [
                {
                    "id": "hide-state",
                    "conditions": [
                        {"field_id": "country", "operator": "not_equals", "value": "US"}
                    ],
                    "actions": [{"type": "hide_field", "target_field_id": "state"}],
                },
                {
                    "id": "us-state-required",
                    "conditions": [{"field_id": "country", "operator": "equals", "value": "US"}],
                    "actions": [{"type": "set_required", "target_field_id": "state"}],
                },
                {
                    "id": "total",
                    "actions": [
                        {
                            "type": "calculate_value",
                            "target_field_id": "total",
                            "formula": "price * quantity",
                        }
                    ],
                },
            ],
            "validation_rules": [
                {
                    "id": "email-format",
                    "field_id": "email",
                    "rule_type": "custom",
                    "rule_config": {"validator": "email"},
                    "error_message": "Enter a valid email",
                },
                {
                    "id": "quantity-range",
                    "field_id": "quantity",
                    "rule_type": "range",
                    "rule_config": {"min": 1, "max": 10},
                    "error_message": "Between 1 and 10",
                },
            ],
        }
    )


@pytest.fixture
def form_file(tmp_path: Path, order_form: FormDefinition) -> Path:
    path = tmp_path / "order.json"
    path.write_text(order_form.model_dump_json(indent=2), encoding="utf-8")
    return path


@pytest.fixture
def values_file(tmp_path: Path) -> Path:
    path = tmp_path / "values.json"
    path.write_text(
        json.dumps({"name": "Ada", "country": "US", "price": "2.5", "quantity": 4}),
        encoding="utf-8",
    )
    return path
