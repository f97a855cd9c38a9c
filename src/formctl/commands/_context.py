"""AppContext — shared Click context for all commands.

Created once by the root CLI group and flows to all subcommands via
``@click.pass_obj``.  Provides lazy store initialization, input loading
and centralized result emission (stdout/stderr routing + exit codes).
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, NoReturn

import click
from pydantic import ValidationError

from formctl.output.formatters import OutputSettings, format_result
from formctl.services.result import failure

if TYPE_CHECKING:
    from pathlib import Path

    from formctl.config.settings import FormctlSettings
    from formctl.domain.definition import FormDefinition
    from formctl.infrastructure.store import FormStore
    from formctl.services.result import ServiceResult


class AppContext:
    """Shared context flowing through Click's command hierarchy.

    Subcommands access it via ``@click.pass_obj``.  The store is lazily
    initialized on first use so ``--help``, ``--version`` and the pure
    ``evaluate``/``validate`` commands never touch the database.
    """

    def __init__(self, settings: FormctlSettings) -> None:
        self.settings = settings
        self._store: FormStore | None = None

        # Configure structured logging
        from formctl.config.logging import configure_logging

        configure_logging(verbose=settings.verbose, log_json=settings.log_json)

        # Enable telemetry context var when verbose
        if settings.verbose:
            from formctl.services.telemetry import enable_telemetry

            enable_telemetry()

    @property
    def store(self) -> FormStore:
        """The store instance (created lazily on first access)."""
        if self._store is None:
            from formctl.infrastructure.store import FormStore

            self._store = FormStore(self.settings)
            self._store.init_plugins()
        return self._store

    def close(self) -> None:
        if self._store is not None:
            self._store.dispose()
            self._store = None

    def emit(self, result: ServiceResult) -> None:
        """Format and output a ServiceResult with correct exit semantics.

        * Success (``result.ok``): writes to stdout, returns normally.
          Warnings are emitted to stderr so they don't pollute piped output.
        * Failure: writes to stderr, exits with code 1.
        """
        settings = self._output_settings()
        output = format_result(result, settings=settings)
        if result.ok:
            click.echo(output)
            # In JSON mode, warnings are already in the serialized payload.
            if not settings.json_output:
                for warning in result.warnings:
                    click.echo(f"WARNING: {warning}", err=True)
        else:
            click.echo(output, err=True)
            raise SystemExit(1)

    def abort(
        self, op: str, code: str, message: str, detail: dict[str, Any] | None = None
    ) -> NoReturn:
        """Emit a failed result built on the spot and exit with code 1."""
        result = failure(op, code, message, detail)
        click.echo(format_result(result, settings=self._output_settings()), err=True)
        raise SystemExit(1)

    def _output_settings(self) -> OutputSettings:
        return OutputSettings(
            json_output=self.settings.json_output,
            quiet=self.settings.quiet,
            verbose=self.settings.verbose,
        )

    # ── Inputs ───────────────────────────────────────────────────────

    def load_definition(self, op: str, path: Path) -> FormDefinition:
        """Parse a form definition JSON file, aborting with INVALID_INPUT on failure."""
        from formctl.domain.definition import FormDefinition

        try:
            return FormDefinition.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            self.abort(
                op,
                "INVALID_INPUT",
                f"Cannot read form definition {path}: {exc}",
                {"path": str(path)},
            )

    def load_values(
        self,
        op: str,
        values_path: Path | None,
        assignments: tuple[str, ...] = (),
    ) -> dict[str, Any]:
        """Merge a JSON values file with ``FIELD=VALUE`` overrides.

        Override values are parsed as JSON when possible (``age=42`` is a
        number), else kept as strings.
        """
        values: dict[str, Any] = {}
        if values_path is not None:
            try:
                loaded = json.loads(values_path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                self.abort(op, "INVALID_INPUT", f"Cannot read values {values_path}: {exc}")
            if not isinstance(loaded, dict):
                self.abort(op, "INVALID_INPUT", "Values file must hold a JSON object")
            values.update(loaded)
        for assignment in assignments:
            field_id, sep, raw = assignment.partition("=")
            if not sep or not field_id:
                self.abort(op, "INVALID_INPUT", f"Expected FIELD=VALUE, got {assignment!r}")
            try:
                values[field_id] = json.loads(raw)
            except json.JSONDecodeError:
                values[field_id] = raw
        return values
