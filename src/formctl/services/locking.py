"""LockService — the lease authority over the local store.

Time comes only from the store's clock; callers never supply expiry.
``lock_version`` increases by one on every grant for a form and is never
reset, so a stale holder can always be told apart from the current one.

Error codes:
  LOCKED      another actor holds an unexpired lease
              (detail: holder_id, lock_expires_at)
  LOCK_LOST   renew by a non-holder, after expiry, or with a stale version
  NOT_HOLDER  release by anyone but the current unexpired holder
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from formctl.domain.locks import FormLock
from formctl.infrastructure.cache import form_keys
from formctl.infrastructure.store import from_iso
from formctl.services._helpers import iso
from formctl.services.base import BaseService
from formctl.services.result import ServiceResult, failure
from formctl.services.telemetry import trace_span, traced

if TYPE_CHECKING:
    from sqlalchemy import Row

    from formctl.infrastructure.store import FormStore

logger = logging.getLogger(__name__)


def _lock_from_row(form_id: str, row: Row[Any] | None) -> FormLock:
    if row is None:
        return FormLock(form_id=form_id)
    return FormLock(
        form_id=form_id,
        is_locked=row.holder_id is not None,
        holder_id=row.holder_id,
        locked_at=from_iso(row.locked_at),
        lock_expires_at=from_iso(row.lock_expires_at),
        lock_version=row.lock_version,
    )


def _require(**values: str) -> None:
    for name, value in values.items():
        if not value or not value.strip():
            msg = f"{name} must not be empty"
            raise ValueError(msg)


def lock_payload(lock: FormLock, now: datetime) -> dict[str, Any]:
    """Serialize *lock* with its liveness at *now*."""
    active = (
        lock.is_locked and lock.lock_expires_at is not None and now < lock.lock_expires_at
    )
    return {
        "form_id": lock.form_id,
        "is_locked": active,
        "holder_id": lock.holder_id if active else None,
        "locked_at": iso(lock.locked_at) if active else None,
        "lock_expires_at": iso(lock.lock_expires_at) if active else None,
        "lock_version": lock.lock_version,
        "expired": lock.is_locked and not active,
    }


class LockService(BaseService):
    """Grants, renews and releases edit leases.

    Args:
        store: The backing store.
        ttl_seconds: Lease length. Defaults to ``[lock] ttl_seconds``.
    """

    def __init__(self, store: FormStore, *, ttl_seconds: int | None = None) -> None:
        super().__init__(store)
        seconds = ttl_seconds if ttl_seconds is not None else store.settings.lock.ttl_seconds
        self._ttl = timedelta(seconds=seconds)

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def _grant_payload(self, lock: FormLock, *, renewed: bool = False) -> dict[str, Any]:
        return {
            "form_id": lock.form_id,
            "holder_id": lock.holder_id,
            "lock_acquired": True,
            "locked_at": iso(lock.locked_at),
            "lock_expires_at": iso(lock.lock_expires_at),
            "lock_version": lock.lock_version,
            "renewed": renewed,
        }

    def _invalidate(self, form_id: str) -> None:
        self._store.cache.invalidate(form_keys.lock_status(form_id))

    @traced
    def acquire(self, form_id: str, actor_id: str) -> ServiceResult:
        """Grant *actor_id* a lease on *form_id* unless someone else holds one.

        Re-acquiring by the current holder re-grants with a new version.
        An expired lease held by someone else is taken over.
        """
        op = "acquire_lock"
        _require(form_id=form_id, actor_id=actor_id)
        now = self._store.now()

        with self._store.transaction() as txn:
            current = _lock_from_row(form_id, txn.lock_row(form_id))
            if (
                current.is_locked
                and current.holder_id != actor_id
                and current.lock_expires_at is not None
                and now < current.lock_expires_at
            ):
                return failure(
                    op,
                    "LOCKED",
                    f"Form {form_id!r} is being edited by {current.holder_id}",
                    {
                        "form_id": form_id,
                        "holder_id": current.holder_id,
                        "lock_expires_at": iso(current.lock_expires_at),
                    },
                )
            granted = FormLock(
                form_id=form_id,
                is_locked=True,
                holder_id=actor_id,
                locked_at=now,
                lock_expires_at=now + self._ttl,
                lock_version=current.lock_version + 1,
            )
            txn.save_lock(
                form_id,
                holder_id=granted.holder_id,
                locked_at=granted.locked_at,
                lock_expires_at=granted.lock_expires_at,
                lock_version=granted.lock_version,
            )

        self._invalidate(form_id)
        taken_over = current.is_locked and current.holder_id not in (None, actor_id)
        if taken_over:
            logger.info("lease on %s taken over from expired holder %s", form_id, current.holder_id)

        warnings: list[str] = []
        self._dispatch_event(
            "post_lock_acquired",
            {
                "form_id": form_id,
                "holder_id": actor_id,
                "lock_version": granted.lock_version,
                "lock_expires_at": iso(granted.lock_expires_at),
            },
            warnings,
        )
        data = self._grant_payload(granted)
        data["taken_over_from"] = current.holder_id if taken_over else None
        return ServiceResult(ok=True, op=op, data=data, warnings=warnings)

    @traced
    def renew(self, form_id: str, actor_id: str, lock_version: int) -> ServiceResult:
        """Extend *actor_id*'s lease if it is still current and versions match."""
        op = "renew_lock"
        _require(form_id=form_id, actor_id=actor_id)
        now = self._store.now()

        with self._store.transaction() as txn:
            current = _lock_from_row(form_id, txn.lock_row(form_id))
            reason = None
            if not current.is_held_by(actor_id, now):
                reason = "expired" if current.holder_id == actor_id else "not the holder"
            elif current.lock_version != lock_version:
                reason = "version mismatch"
            if reason is not None:
                return failure(
                    op,
                    "LOCK_LOST",
                    f"Lease on {form_id!r} is no longer held by {actor_id}: {reason}",
                    {
                        "form_id": form_id,
                        "reason": reason,
                        "holder_id": current.holder_id,
                        "lock_version": current.lock_version,
                    },
                )
            renewed = current.model_copy(update={"lock_expires_at": now + self._ttl})
            txn.save_lock(
                form_id,
                holder_id=renewed.holder_id,
                locked_at=renewed.locked_at,
                lock_expires_at=renewed.lock_expires_at,
                lock_version=renewed.lock_version,
            )

        self._invalidate(form_id)
        return ServiceResult(ok=True, op=op, data=self._grant_payload(renewed, renewed=True))

    @traced
    def release(self, form_id: str, actor_id: str) -> ServiceResult:
        op = "release_lock"
        _require(form_id=form_id, actor_id=actor_id)
        now = self._store.now()

        with self._store.transaction() as txn:
            current = _lock_from_row(form_id, txn.lock_row(form_id))
            if not current.is_held_by(actor_id, now):
                return failure(
                    op,
                    "NOT_HOLDER",
                    f"{actor_id} does not hold the lease on {form_id!r}",
                    {"form_id": form_id, "holder_id": current.holder_id},
                )
            txn.clear_lock(form_id)

        self._invalidate(form_id)
        return ServiceResult(
            ok=True,
            op=op,
            data={"form_id": form_id, "released": True, "lock_version": current.lock_version},
        )

    @traced
    def status(self, form_id: str) -> ServiceResult:
        """Current lease state of *form_id*, evaluated against the authority clock."""
        _require(form_id=form_id)
        key = form_keys.lock_status(form_id)
        lock = self._store.cache.get(key)
        if lock is None:
            with self._store.transaction() as txn:
                lock = _lock_from_row(form_id, txn.lock_row(form_id))
            self._store.cache.set(key, lock)
        return ServiceResult(ok=True, op="lock_status", data=lock_payload(lock, self._store.now()))

    @traced
    def force_release(self, form_id: str, reason: str = "") -> ServiceResult:
        """Clear any lease on *form_id* regardless of holder (administrative)."""
        _require(form_id=form_id)
        with self._store.transaction() as txn:
            current = _lock_from_row(form_id, txn.lock_row(form_id))
            if current.is_locked:
                txn.clear_lock(form_id)

        self._invalidate(form_id)
        if current.is_locked:
            logger.warning(
                "lease on %s force-released from %s: %s",
                form_id,
                current.holder_id,
                reason or "no reason given",
            )
        return ServiceResult(
            ok=True,
            op="force_release_lock",
            data={
                "form_id": form_id,
                "released": current.is_locked,
                "previous_holder": current.holder_id,
                "reason": reason,
            },
        )

    @traced
    def cleanup_expired(self) -> ServiceResult:
        """Clear every lease whose expiry has passed."""
        now = self._store.now()
        cleared: list[str] = []
        with trace_span("scan_leases") as span, self._store.transaction() as txn:
            for row in txn.held_lock_rows():
                if span is not None:
                    span.count("leases")
                expires = from_iso(row.lock_expires_at)
                if expires is None or expires <= now:
                    txn.clear_lock(row.form_id)
                    cleared.append(row.form_id)

        for form_id in cleared:
            self._invalidate(form_id)
        return ServiceResult(
            ok=True,
            op="cleanup_expired_locks",
            data={"cleared": cleared, "count": len(cleared)},
        )
