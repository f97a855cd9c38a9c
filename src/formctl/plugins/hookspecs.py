"""Pluggy hook specifications for formctl lifecycle events.

Hooks are dispatched synchronously after the triggering operation has
committed. A failing hook never undoes the operation.
"""

from __future__ import annotations

from typing import Any

import pluggy

hookspec = pluggy.HookspecMarker("formctl")
hookimpl = pluggy.HookimplMarker("formctl")


class FormctlHookSpec:
    """Hook specifications for the formctl plugin system."""

    @hookspec
    def post_lock_acquired(
        self,
        form_id: str,
        holder_id: str,
        lock_version: int,
        lock_expires_at: str,
    ) -> None:
        """Called after an edit lease is granted."""

    @hookspec
    def lock_lost(self, form_id: str, actor_id: str, reason: str) -> None:
        """Called when an editing session loses its lease and turns read-only."""

    @hookspec
    def post_version_created(
        self,
        form_id: str,
        version_number: int,
        version_id: str,
        created_by: str | None,
    ) -> None:
        """Called after a new form version is saved."""

    @hookspec
    def post_commit(
        self,
        form_id: str,
        actor_id: str,
        version_number: int | None,
        stats: dict[str, Any],
    ) -> None:
        """Called after an editing session commits its changes."""
