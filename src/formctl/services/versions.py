"""VersionService — append-only version history per form.

INVARIANT: version numbers are assigned ``max + 1`` inside the write
transaction, start at 1, and are never reused. A restore creates a new
version rather than reviving an old number.

Status lifecycle: draft -> published -> archived (draft may also be
archived directly). At most one version per form is published; publishing
a version archives the previously published one.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from formctl.domain.fields import FormSchema
from formctl.domain.ids import version_id
from formctl.domain.versions import FormStatus, FormVersion, is_valid_transition
from formctl.engine.differ import compare
from formctl.infrastructure.cache import form_keys
from formctl.infrastructure.database.counters import next_version_number
from formctl.infrastructure.store import from_iso, to_iso
from formctl.services.base import BaseService
from formctl.services.result import ServiceResult, failure
from formctl.services.telemetry import trace_span, traced

if TYPE_CHECKING:
    from sqlalchemy import Row

    from formctl.infrastructure.store import StoreTransaction

logger = logging.getLogger(__name__)


def _version_from_row(row: Row[Any]) -> FormVersion:
    return FormVersion(
        id=row.id,
        form_id=row.form_id,
        version_number=row.version_number,
        schema_snapshot=FormSchema.model_validate_json(row.schema_snapshot),
        title=row.title,
        description=row.description,
        status=FormStatus(row.status),
        created_at=from_iso(row.created_at),
        change_summary=row.change_summary,
        created_by=row.created_by,
        published_at=from_iso(row.published_at),
    )


def _dump(version: FormVersion) -> dict[str, Any]:
    return version.model_dump(mode="json")


class VersionService(BaseService):
    """Save, list, compare and transition form versions."""

    # ── Reads (cached) ───────────────────────────────────────────────

    def _load(self, form_id: str, version_number: int) -> FormVersion | None:
        key = form_keys.version(form_id, version_number)
        cached = self._store.cache.get(key)
        if cached is not None:
            return cached  # type: ignore[no-any-return]
        with self._store.transaction() as txn:
            row = txn.version_row(form_id, version_number)
        if row is None:
            return None
        version = _version_from_row(row)
        self._store.cache.set(key, version)
        return version

    def _load_all(self, form_id: str) -> list[FormVersion]:
        key = form_keys.versions(form_id)
        cached = self._store.cache.get(key)
        if cached is not None:
            return list(cached)
        with self._store.transaction() as txn:
            versions = [_version_from_row(row) for row in txn.version_rows(form_id)]
        self._store.cache.set(key, versions)
        return list(versions)

    def _invalidate(self, form_id: str) -> None:
        self._store.cache.invalidate(form_keys.versions(form_id))

    def _not_found(self, op: str, form_id: str, version_number: int) -> ServiceResult:
        return failure(
            op,
            "NOT_FOUND",
            f"Form {form_id!r} has no version {version_number}",
            {"form_id": form_id, "version_number": version_number},
        )

    @traced
    def list_versions(self, form_id: str) -> ServiceResult:
        """All versions of *form_id*, ascending by version number."""
        versions = self._load_all(form_id)
        return ServiceResult(
            ok=True,
            op="list_versions",
            data={
                "form_id": form_id,
                "count": len(versions),
                "versions": [_dump(v) for v in versions],
            },
        )

    @traced
    def get_version(self, form_id: str, version_number: int) -> ServiceResult:
        version = self._load(form_id, version_number)
        if version is None:
            return self._not_found("get_version", form_id, version_number)
        return ServiceResult(ok=True, op="get_version", data={"version": _dump(version)})

    @traced
    def compare(
        self,
        form_id: str,
        version_a: int,
        version_b: int,
        *,
        track_position: bool | None = None,
    ) -> ServiceResult:
        """Diff two saved versions of *form_id*."""
        op = "compare_versions"
        a = self._load(form_id, version_a)
        if a is None:
            return self._not_found(op, form_id, version_a)
        b = self._load(form_id, version_b)
        if b is None:
            return self._not_found(op, form_id, version_b)
        if track_position is None:
            track_position = self._store.settings.versions.track_position
        with trace_span("diff"):
            comparison = compare(a, b, track_position=track_position)
        return ServiceResult(
            ok=True,
            op=op,
            data={"form_id": form_id, "comparison": comparison.model_dump(mode="json")},
        )

    # ── Writes ───────────────────────────────────────────────────────

    def _insert(
        self,
        txn: StoreTransaction,
        form_id: str,
        schema: FormSchema,
        title: str,
        description: str,
        change_summary: str | None,
        created_by: str | None,
    ) -> FormVersion:
        number = next_version_number(txn.conn, form_id)
        version = FormVersion(
            id=version_id(form_id, number),
            form_id=form_id,
            version_number=number,
            schema_snapshot=schema,
            title=title,
            description=description,
            status=FormStatus.DRAFT,
            created_at=self._store.now(),
            change_summary=change_summary,
            created_by=created_by,
        )
        txn.insert_version(
            id=version.id,
            form_id=form_id,
            version_number=number,
            schema_snapshot=schema.model_dump_json(),
            title=title,
            description=description,
            status=version.status.value,
            created_at=to_iso(version.created_at),
            change_summary=change_summary,
            created_by=created_by,
        )
        return version

    def _created(self, op: str, version: FormVersion, extra: dict[str, Any]) -> ServiceResult:
        self._invalidate(version.form_id)
        warnings: list[str] = []
        self._dispatch_event(
            "post_version_created",
            {
                "form_id": version.form_id,
                "version_number": version.version_number,
                "version_id": version.id,
                "created_by": version.created_by,
            },
            warnings,
        )
        logger.info("saved %s", version.id)
        return ServiceResult(
            ok=True, op=op, data={"version": _dump(version), **extra}, warnings=warnings
        )

    @traced
    def create_version(
        self,
        form_id: str,
        schema: FormSchema,
        title: str,
        description: str = "",
        change_summary: str | None = None,
        created_by: str | None = None,
    ) -> ServiceResult:
        """Save *schema* as the next draft version of *form_id*."""
        if not form_id.strip():
            msg = "form_id must not be empty"
            raise ValueError(msg)
        with self._store.transaction() as txn:
            version = self._insert(
                txn, form_id, schema, title, description, change_summary, created_by
            )
        return self._created("create_version", version, {})

    @traced
    def restore(
        self,
        form_id: str,
        version_number: int,
        *,
        created_by: str | None = None,
    ) -> ServiceResult:
        """Save a copy of version *version_number* as a new draft version."""
        op = "restore_version"
        source = self._load(form_id, version_number)
        if source is None:
            return self._not_found(op, form_id, version_number)
        with self._store.transaction() as txn:
            version = self._insert(
                txn,
                form_id,
                source.schema_snapshot,
                source.title,
                source.description,
                f"Restored from version {version_number}",
                created_by,
            )
        return self._created(op, version, {"restored_from": version_number})

    def _transition(
        self, op: str, form_id: str, version_number: int, target: FormStatus
    ) -> ServiceResult:
        archived: list[int] = []
        with self._store.transaction() as txn:
            row = txn.version_row(form_id, version_number)
            if row is None:
                return self._not_found(op, form_id, version_number)
            current = FormStatus(row.status)
            if not is_valid_transition(current, target):
                return failure(
                    op,
                    "INVALID_TRANSITION",
                    f"Cannot move version {version_number} from {current} to {target}",
                    {"from": current.value, "to": target.value},
                )
            version = _version_from_row(row)
            if target == FormStatus.PUBLISHED:
                version = version.model_copy(
                    update={"status": target, "published_at": self._store.now()}
                )
                for other in txn.version_rows(form_id, status=FormStatus.PUBLISHED.value):
                    txn.update_version(form_id, other.version_number, status="archived")
                    archived.append(other.version_number)
            else:
                version = version.model_copy(update={"status": target})
            txn.update_version(
                form_id,
                version_number,
                status=target.value,
                published_at=to_iso(version.published_at),
            )

        self._invalidate(form_id)
        return ServiceResult(
            ok=True, op=op, data={"version": _dump(version), "archived": archived}
        )

    @traced
    def publish(self, form_id: str, version_number: int) -> ServiceResult:
        """Publish a draft, archiving whichever version was published before."""
        return self._transition("publish_version", form_id, version_number, FormStatus.PUBLISHED)

    @traced
    def archive(self, form_id: str, version_number: int) -> ServiceResult:
        return self._transition("archive_version", form_id, version_number, FormStatus.ARCHIVED)
