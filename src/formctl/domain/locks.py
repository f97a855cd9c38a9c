"""Edit lease models.

A lease is a time-bounded exclusive right to edit one form definition.
The lock authority issues ``lock_expires_at`` and a per-form, strictly
increasing ``lock_version``; clients never supply either. The lock is
advisory: it coordinates well-behaved editors but does not itself block
a write at the storage layer.

Lock operations report their outcome as one of the typed values below
rather than raising, so callers can offer retry/override paths.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class FormLock(BaseModel):
    """Current lease state of one form."""

    model_config = {"frozen": True}

    form_id: str
    is_locked: bool = False
    holder_id: str | None = None
    locked_at: datetime | None = None
    lock_expires_at: datetime | None = None
    lock_version: int = 0

    def is_held_by(self, actor_id: str, now: datetime) -> bool:
        """True if *actor_id* holds an unexpired lease at *now*."""
        return (
            self.is_locked
            and self.holder_id == actor_id
            and self.lock_expires_at is not None
            and now < self.lock_expires_at
        )


class LockGrant(BaseModel):
    """Lease granted or renewed."""

    model_config = {"frozen": True}

    kind: Literal["granted"] = "granted"
    form_id: str
    holder_id: str
    lock_acquired: bool = True
    lock_expires_at: datetime
    lock_version: int


class LockConflict(BaseModel):
    """Another actor holds an unexpired lease."""

    model_config = {"frozen": True}

    kind: Literal["conflict"] = "conflict"
    form_id: str
    holder_id: str
    lock_expires_at: datetime


class LockLost(BaseModel):
    """The caller's lease is gone (expired, taken over or version mismatch)."""

    model_config = {"frozen": True}

    kind: Literal["lost"] = "lost"
    form_id: str
    reason: str


class LockReleased(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["released"] = "released"
    form_id: str


class LockUnavailable(BaseModel):
    """The lock authority could not be reached within the timeout and retry."""

    model_config = {"frozen": True}

    kind: Literal["unavailable"] = "unavailable"
    form_id: str
    reason: str
    attempts: int


type LockOutcome = LockGrant | LockConflict | LockLost | LockReleased | LockUnavailable
