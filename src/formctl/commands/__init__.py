"""Subcommand modules for formctl.

Provides register_commands() which uses deferred imports to keep
``formctl --help`` fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all command groups and standalone commands on the root CLI group."""
    # --- Groups ---
    from formctl.commands.lock import lock
    from formctl.commands.version import version

    cli.add_command(lock)
    cli.add_command(version)

    # --- Standalone commands ---
    from formctl.commands.evaluate import evaluate
    from formctl.commands.validate import validate

    cli.add_command(evaluate)
    cli.add_command(validate)
