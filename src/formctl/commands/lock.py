"""Command group: edit leases on form definitions."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from formctl.commands._base import FormGroup

if TYPE_CHECKING:
    from formctl.commands._context import AppContext
    from formctl.services.locking import LockService

_LOCK_EXAMPLES = """\
  formctl lock acquire contact-form --actor alice
  formctl lock renew contact-form --actor alice --lock-version 3
  formctl lock release contact-form --actor alice
  formctl lock status contact-form
  formctl lock cleanup"""

_actor_option = click.option(
    "--actor",
    "actor_id",
    required=True,
    envvar="FORMCTL_ACTOR",
    help="Who is editing (or $FORMCTL_ACTOR).",
)


def _service(app: AppContext) -> LockService:
    from formctl.services.locking import LockService

    return LockService(app.store)


@click.group(cls=FormGroup, examples=_LOCK_EXAMPLES)
@click.pass_obj
def lock(app: AppContext) -> None:
    """Acquire, renew and release edit leases."""


@lock.command(
    examples="""\
  formctl lock acquire contact-form --actor alice
  formctl --json lock acquire contact-form --actor bob"""
)
@click.argument("form_id")
@_actor_option
@click.pass_obj
def acquire(app: AppContext, form_id: str, actor_id: str) -> None:
    """Take the edit lease on FORM_ID (fails if someone else holds it)."""
    app.emit(_service(app).acquire(form_id, actor_id))


@lock.command(
    examples="""\
  formctl lock renew contact-form --actor alice --lock-version 3"""
)
@click.argument("form_id")
@_actor_option
@click.option("--lock-version", type=int, required=True, help="Version from the last grant.")
@click.pass_obj
def renew(app: AppContext, form_id: str, actor_id: str, lock_version: int) -> None:
    """Extend a held lease."""
    app.emit(_service(app).renew(form_id, actor_id, lock_version))


@lock.command(
    examples="""\
  formctl lock release contact-form --actor alice
  formctl lock release contact-form --force --reason 'editor crashed'"""
)
@click.argument("form_id")
@click.option("--actor", "actor_id", envvar="FORMCTL_ACTOR", default=None, help="Lease holder.")
@click.option("--force", is_flag=True, help="Clear the lease whoever holds it.")
@click.option("--reason", default="", help="Why the lease is force-released.")
@click.pass_obj
def release(
    app: AppContext, form_id: str, actor_id: str | None, force: bool, reason: str
) -> None:
    """Release the lease on FORM_ID."""
    if force:
        app.emit(_service(app).force_release(form_id, reason))
        return
    if not actor_id:
        app.abort("release_lock", "INVALID_INPUT", "--actor is required unless --force is given")
    app.emit(_service(app).release(form_id, actor_id))


@lock.command(
    examples="""\
  formctl lock status contact-form
  formctl --json lock status contact-form"""
)
@click.argument("form_id")
@click.pass_obj
def status(app: AppContext, form_id: str) -> None:
    """Show who holds the lease on FORM_ID and until when."""
    app.emit(_service(app).status(form_id))


@lock.command(
    examples="""\
  formctl lock cleanup"""
)
@click.pass_obj
def cleanup(app: AppContext) -> None:
    """Clear every expired lease."""
    app.emit(_service(app).cleanup_expired())
