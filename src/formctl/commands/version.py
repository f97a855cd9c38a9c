"""Command group: saved form versions."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click

from formctl.commands._base import FormGroup

if TYPE_CHECKING:
    from formctl.commands._context import AppContext
    from formctl.services.versions import VersionService

_VERSION_EXAMPLES = """\
  formctl version save contact-form contact.json -m "Add phone field"
  formctl version list contact-form
  formctl version show contact-form 2
  formctl version diff contact-form 1 2
  formctl version publish contact-form 2
  formctl version restore contact-form 1"""


def _service(app: AppContext) -> VersionService:
    from formctl.services.versions import VersionService

    return VersionService(app.store)


@click.group(cls=FormGroup, examples=_VERSION_EXAMPLES)
@click.pass_obj
def version(app: AppContext) -> None:
    """Save, list, compare and publish form versions."""


@version.command(
    examples="""\
  formctl version save contact-form contact.json
  formctl version save contact-form contact.json -m "Reword labels" --actor alice"""
)
@click.argument("form_id")
@click.argument("form_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("-m", "--summary", "change_summary", default=None, help="What changed.")
@click.option("--actor", "actor_id", envvar="FORMCTL_ACTOR", default=None, help="Author.")
@click.pass_obj
def save(
    app: AppContext,
    form_id: str,
    form_file: Path,
    change_summary: str | None,
    actor_id: str | None,
) -> None:
    """Save FORM_FILE as the next draft version of FORM_ID."""
    definition = app.load_definition("create_version", form_file)
    app.emit(
        _service(app).create_version(
            form_id,
            definition.to_schema(),
            definition.title,
            definition.description,
            change_summary,
            actor_id,
        )
    )


@version.command(
    "list",
    examples="""\
  formctl version list contact-form
  formctl -q version list contact-form""",
)
@click.argument("form_id")
@click.pass_obj
def list_cmd(app: AppContext, form_id: str) -> None:
    """List every version of FORM_ID, oldest first."""
    app.emit(_service(app).list_versions(form_id))


@version.command(
    examples="""\
  formctl version show contact-form 2
  formctl --json version show contact-form 2"""
)
@click.argument("form_id")
@click.argument("version_number", type=int)
@click.pass_obj
def show(app: AppContext, form_id: str, version_number: int) -> None:
    """Show one saved version."""
    app.emit(_service(app).get_version(form_id, version_number))


@version.command(
    examples="""\
  formctl version diff contact-form 1 2
  formctl version diff contact-form 1 3 --track-position"""
)
@click.argument("form_id")
@click.argument("version_a", type=int)
@click.argument("version_b", type=int)
@click.option(
    "--track-position/--ignore-position",
    default=None,
    help="Report fields that only moved (default from [versions] config).",
)
@click.pass_obj
def diff(
    app: AppContext,
    form_id: str,
    version_a: int,
    version_b: int,
    track_position: bool | None,
) -> None:
    """Show what changed going from VERSION_A to VERSION_B."""
    app.emit(_service(app).compare(form_id, version_a, version_b, track_position=track_position))


@version.command(
    examples="""\
  formctl version publish contact-form 2"""
)
@click.argument("form_id")
@click.argument("version_number", type=int)
@click.pass_obj
def publish(app: AppContext, form_id: str, version_number: int) -> None:
    """Publish a version, archiving the one published before it."""
    app.emit(_service(app).publish(form_id, version_number))


@version.command(
    examples="""\
  formctl version archive contact-form 1"""
)
@click.argument("form_id")
@click.argument("version_number", type=int)
@click.pass_obj
def archive(app: AppContext, form_id: str, version_number: int) -> None:
    """Archive a version."""
    app.emit(_service(app).archive(form_id, version_number))


@version.command(
    examples="""\
  formctl version restore contact-form 1 --actor alice"""
)
@click.argument("form_id")
@click.argument("version_number", type=int)
@click.option("--actor", "actor_id", envvar="FORMCTL_ACTOR", default=None, help="Author.")
@click.pass_obj
def restore(app: AppContext, form_id: str, version_number: int, actor_id: str | None) -> None:
    """Save a copy of an older version as a new draft."""
    app.emit(_service(app).restore(form_id, version_number, created_by=actor_id))
