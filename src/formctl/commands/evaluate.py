"""Command: evaluate conditional rules against field values."""

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
  formctl evaluate contact.json --values answers.json
  formctl evaluate contact.json --set country=US --set age=42
  formctl --json evaluate contact.json --values answers.json""",
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
@click.pass_obj
def evaluate(
    app: AppContext,
    form_file: Path,
    values_path: Path | None,
    assignments: tuple[str, ...],
) -> None:
    """Compute visibility, required flags and calculated values for a form."""
    from formctl.services.evaluation import EvaluationService

    definition = app.load_definition("evaluate", form_file)
    values = app.load_values("evaluate", values_path, assignments)
    app.emit(EvaluationService(app.settings).evaluate(definition, values))
