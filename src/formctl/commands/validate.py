"""Command: validate field values against a form's validation rules."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click

from formctl.commands._base import FormCommand

if TYPE_CHECKING:
    from formctl.commands._context import AppContext


@click.command(
    cls=FormCommand,
    examples="""\
  formctl validate contact.json --values answers.json
  formctl validate contact.json --set email=someone@example.com --strict
  formctl --json validate contact.json --values answers.json""",
)
@click.argument("form_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--values",
    "values_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON object of field values.",
)
@click.option("--set", "assignments", multiple=True, help="FIELD=VALUE override (repeatable).")
@click.option("--strict", is_flag=True, help="Exit with code 1 when submission is blocked.")
@click.pass_obj
def validate(
    app: AppContext,
    form_file: Path,
    values_path: Path | None,
    assignments: tuple[str, ...],
    strict: bool,
) -> None:
    """Run validation rules; hidden fields are skipped."""
    from formctl.services.evaluation import EvaluationService

    definition = app.load_definition("validate", form_file)
    values = app.load_values("validate", values_path, assignments)
    result = EvaluationService(app.settings).validate(definition, values)
    app.emit(result)
    if strict and not result.data.get("is_valid", False):
        raise SystemExit(1)
