"""EditingSession — one actor editing one form definition.

Composes the pieces an editor needs:

- edits flow through a :class:`CommandHistory` (undo/redo);
- rules and validations are recomputed on demand against the live state;
- the edit lease gates every mutation and the final commit;
- a lost or unreachable lease demotes the session to read-only, records a
  notification and dispatches the ``lock_lost`` hook;
- with a renew interval the lease is renewed in the background until the
  session closes or is demoted;
- async validation runs through one tracker per session, so a newer
  ``validate()`` supersedes the checks of an older one still in flight.

Error codes:
  READ_ONLY     the session holds no lease
  LOCK_EXPIRED  the lease passed its server-issued expiry before commit
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from formctl.config.logging import log_context
from formctl.domain.commands import BuilderState, Command, CommandType, build_command
from formctl.domain.definition import FormDefinition
from formctl.domain.locks import (
    LockConflict,
    LockGrant,
    LockLost,
    LockOutcome,
    LockReleased,
    LockUnavailable,
)
from formctl.domain.rules import EvaluationResult
from formctl.domain.validation import ValidationResult
from formctl.engine.history import DEFAULT_MAX_SIZE, CommandHistory
from formctl.engine.rules import evaluate
from formctl.engine.validation import DEFAULT_REQUIRED_MESSAGE, AsyncValidationTracker
from formctl.infrastructure.store import Clock, utc_now
from formctl.services._helpers import iso
from formctl.services.base import dispatch_hook
from formctl.services.evaluation import validate_definition
from formctl.services.lock_client import build_lock_client
from formctl.services.result import ServiceResult, failure
from formctl.services.versions import VersionService

if TYPE_CHECKING:
    from formctl.engine.validators import ValidatorRegistry
    from formctl.infrastructure.store import FormStore
    from formctl.plugins.manager import PluginManager
    from formctl.services.lock_client import LockClient

logger = logging.getLogger(__name__)


class EditingSession:
    """Lease-gated editing of one form by one actor.

    Args:
        form_id: The form being edited.
        actor_id: Who is editing.
        definition: The definition as loaded; its rules stay fixed while
            title, description, fields and branding are edited.
        lock_client: Access to the lease authority.
        versions: Where commits are persisted. Without one, commit only
            checks the lease and fires hooks.
        clock: Used to check the server-issued expiry locally.
        renew_interval: Seconds between background renewals once the lease
            is granted. ``None`` leaves renewal to explicit :meth:`heartbeat`
            calls.
    """

    def __init__(
        self,
        form_id: str,
        actor_id: str,
        definition: FormDefinition,
        lock_client: LockClient,
        *,
        versions: VersionService | None = None,
        plugin_manager: PluginManager | None = None,
        clock: Clock = utc_now,
        history_size: int = DEFAULT_MAX_SIZE,
        registry: ValidatorRegistry | None = None,
        async_timeout: float = 5.0,
        required_message: str = DEFAULT_REQUIRED_MESSAGE,
        renew_interval: float | None = None,
    ) -> None:
        if renew_interval is not None and renew_interval <= 0:
            msg = f"renew_interval must be > 0, got {renew_interval}"
            raise ValueError(msg)
        self._form_id = form_id
        self._actor_id = actor_id
        self._definition = definition
        self._client = lock_client
        self._versions = versions
        self._plugin_manager = plugin_manager
        self._clock = clock
        self._history = CommandHistory(definition.to_builder_state(), max_size=history_size)
        self._registry = registry
        self._required_message = required_message
        self._tracker = AsyncValidationTracker(registry, timeout=async_timeout)
        self._renew_interval = renew_interval
        self._renew_task: asyncio.Task[None] | None = None
        self._grant: LockGrant | None = None
        self._conflict: LockConflict | None = None
        self._notifications: list[str] = []
        self._warnings: list[str] = []

    @classmethod
    def from_settings(
        cls,
        form_id: str,
        actor_id: str,
        definition: FormDefinition,
        store: FormStore,
        *,
        registry: ValidatorRegistry | None = None,
    ) -> EditingSession:
        """Build a session wired to *store* and configured by its settings.

        ``[lock]`` picks the lease authority and renew interval, ``[history]``
        bounds undo depth and ``[validation]`` sets the async timeout and the
        required-field message.
        """
        settings = store.settings
        return cls(
            form_id,
            actor_id,
            definition,
            build_lock_client(store),
            versions=VersionService(store),
            plugin_manager=store.plugin_manager,
            clock=store.now,
            history_size=settings.history.max_size,
            registry=registry,
            async_timeout=settings.validation.async_timeout_seconds,
            required_message=settings.validation.required_message,
            renew_interval=settings.lock.renew_interval_seconds,
        )

    # ── State ────────────────────────────────────────────────────────

    @property
    def form_id(self) -> str:
        return self._form_id

    @property
    def actor_id(self) -> str:
        return self._actor_id

    @property
    def history(self) -> CommandHistory:
        return self._history

    @property
    def state(self) -> BuilderState:
        return self._history.state

    @property
    def definition(self) -> FormDefinition:
        """The loaded definition carrying the live builder state."""
        return self._definition.with_state(self._history.state)

    @property
    def grant(self) -> LockGrant | None:
        return self._grant

    @property
    def conflict(self) -> LockConflict | None:
        """The conflicting lease seen by the last :meth:`open`, if any."""
        return self._conflict

    @property
    def is_read_only(self) -> bool:
        return self._grant is None

    @property
    def lease_valid(self) -> bool:
        """True while the lease is held and its server-issued expiry is ahead."""
        return self._grant is not None and self._clock() < self._grant.lock_expires_at

    @property
    def notifications(self) -> list[str]:
        return list(self._notifications)

    @property
    def warnings(self) -> list[str]:
        return list(self._warnings)

    # ── Lease ────────────────────────────────────────────────────────

    async def open(self) -> LockOutcome:
        """Acquire the lease. On conflict the session stays read-only.

        Calling ``open`` again is the retry path after a conflict.
        """
        outcome = await self._client.acquire(self._form_id, self._actor_id)
        if isinstance(outcome, LockGrant):
            self._grant = outcome
            self._conflict = None
            logger.debug("session %s/%s opened", self._form_id, self._actor_id)
            self._start_renewing()
        elif isinstance(outcome, LockConflict):
            self._grant = None
            self._conflict = outcome
            self._notifications.append(
                f"{self._form_id} is being edited by {outcome.holder_id} "
                f"until {iso(outcome.lock_expires_at)}"
            )
        else:
            self._grant = None
            self._notifications.append(f"Lock service unavailable: {outcome.reason}")
        return outcome

    async def heartbeat(self) -> LockOutcome:
        """Renew the lease. Losing it demotes the session to read-only."""
        if self._grant is None:
            return LockLost(form_id=self._form_id, reason="no lease held")
        outcome = await self._client.renew(
            self._form_id, self._actor_id, self._grant.lock_version
        )
        if isinstance(outcome, LockGrant):
            self._grant = outcome
        elif isinstance(outcome, (LockLost, LockUnavailable)):
            self._demote(outcome.reason)
        return outcome

    def _start_renewing(self) -> None:
        if self._renew_interval is None:
            return
        if self._renew_task is not None and not self._renew_task.done():
            return
        self._renew_task = asyncio.create_task(self._renew_loop(self._renew_interval))

    async def _renew_loop(self, interval: float) -> None:
        while self._grant is not None:
            await asyncio.sleep(interval)
            outcome = await self.heartbeat()
            if not isinstance(outcome, LockGrant):
                return

    async def _stop_renewing(self) -> None:
        task, self._renew_task = self._renew_task, None
        if task is None or task.done():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    def _demote(self, reason: str) -> None:
        self._grant = None
        self._notifications.append(f"Edit lock lost: {reason}. The form is now read-only.")
        with log_context(form_id=self._form_id, actor_id=self._actor_id):
            logger.warning("editing session lost its lease: %s", reason)
        dispatch_hook(
            self._plugin_manager,
            "lock_lost",
            {"form_id": self._form_id, "actor_id": self._actor_id, "reason": reason},
            self._warnings,
        )

    async def close(self) -> ServiceResult:
        """Stop background work and release the lease, if held."""
        await self._stop_renewing()
        await self._tracker.aclose()
        released = False
        if self._grant is not None:
            outcome = await self._client.release(self._form_id, self._actor_id)
            released = isinstance(outcome, LockReleased)
            self._grant = None
        return ServiceResult(
            ok=True,
            op="close_session",
            data={"form_id": self._form_id, "released": released},
        )

    # ── Edits ────────────────────────────────────────────────────────

    def _read_only(self, op: str) -> ServiceResult:
        return failure(
            op,
            "READ_ONLY",
            f"Session on {self._form_id!r} is read-only",
            {"form_id": self._form_id, "actor_id": self._actor_id},
        )

    def _edited(self, op: str, changed: bool) -> ServiceResult:
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "changed": changed,
                "current_index": self._history.current_index,
                "can_undo": self._history.can_undo,
                "can_redo": self._history.can_redo,
            },
        )

    def apply(self, command: Command) -> ServiceResult:
        if self.is_read_only:
            return self._read_only("apply_command")
        self._history.push(command)
        return self._edited("apply_command", True)

    def record(
        self,
        command_type: CommandType | str,
        previous: Any,
        current: Any,
        description: str = "",
    ) -> ServiceResult:
        """Build a command from before/after payloads and apply it."""
        return self.apply(build_command(command_type, previous, current, description))

    def undo(self) -> ServiceResult:
        if self.is_read_only:
            return self._read_only("undo")
        return self._edited("undo", self._history.undo() is not None)

    def redo(self) -> ServiceResult:
        if self.is_read_only:
            return self._read_only("redo")
        return self._edited("redo", self._history.redo() is not None)

    # ── Evaluation ───────────────────────────────────────────────────

    def evaluate(self, values: Mapping[str, Any]) -> EvaluationResult:
        definition = self.definition
        return evaluate(definition.fields, values, definition.conditional_rules)

    async def validate(self, values: Mapping[str, Any]) -> ValidationResult:
        return await validate_definition(
            self.definition,
            values,
            registry=self._registry,
            required_message=self._required_message,
            tracker=self._tracker,
        )

    # ── Commit ───────────────────────────────────────────────────────

    async def commit(self, change_summary: str | None = None) -> ServiceResult:
        """Persist the live state as a new version, if the lease is valid."""
        op = "commit"
        if self._grant is None:
            return self._read_only(op)
        if not self.lease_valid:
            expired_at = iso(self._grant.lock_expires_at)
            self._demote("lease expired")
            return failure(
                op,
                "LOCK_EXPIRED",
                f"Lease on {self._form_id!r} expired at {expired_at}",
                {"form_id": self._form_id, "lock_expires_at": expired_at},
            )

        warnings: list[str] = []
        version_number: int | None = None
        version: dict[str, Any] | None = None
        if self._versions is not None:
            state = self._history.state
            saved = self._versions.create_version(
                self._form_id,
                self.definition.to_schema(),
                state.title,
                state.description,
                change_summary,
                self._actor_id,
            )
            if not saved.ok:
                return saved
            warnings.extend(saved.warnings)
            version = saved.data["version"]
            version_number = version["version_number"]

        stats = {
            "commands": len(self._history),
            "fields": len(self._history.state.fields),
        }
        dispatch_hook(
            self._plugin_manager,
            "post_commit",
            {
                "form_id": self._form_id,
                "actor_id": self._actor_id,
                "version_number": version_number,
                "stats": stats,
            },
            warnings,
        )
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "form_id": self._form_id,
                "version_number": version_number,
                "version": version,
                "stats": stats,
            },
            warnings=warnings,
        )
