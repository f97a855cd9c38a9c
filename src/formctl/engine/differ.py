"""Version differ — structural comparison of two saved form snapshots.

Fields are matched by id. Attribute comparison covers every attribute a
field carries, including extras unknown to :class:`FormField`. Branding is
compared shallowly, key by key.
"""

from __future__ import annotations

from typing import Any

from formctl.domain.fields import FormField
from formctl.domain.versions import (
    AttributeChange,
    FieldDiff,
    FieldSummary,
    FormVersion,
    FormVersionComparison,
)

POSITION_KEY = "position"


def _summary(field: FormField) -> FieldSummary:
    return FieldSummary(id=field.id, label=field.label, type=field.type)


def _attributes(field: FormField, position: int | None) -> dict[str, Any]:
    attrs = field.model_dump(mode="json", exclude_none=True)
    if position is not None:
        attrs[POSITION_KEY] = position
    return attrs


def diff_mappings(old: dict[str, Any], new: dict[str, Any]) -> dict[str, AttributeChange]:
    """Changed keys of two flat mappings, in sorted key order."""
    changes: dict[str, AttributeChange] = {}
    for key in sorted(old.keys() | new.keys()):
        before, after = old.get(key), new.get(key)
        if before != after:
            changes[key] = AttributeChange(old=before, new=after)
    return changes


def compare(
    version_a: FormVersion,
    version_b: FormVersion,
    *,
    track_position: bool = False,
) -> FormVersionComparison:
    """Describe what changed going from *version_a* to *version_b*.

    Reordering alone is not a modification unless *track_position* is set,
    in which case each field's index is compared as a ``position`` attribute.
    """
    fields_a = version_a.schema_snapshot.fields
    fields_b = version_b.schema_snapshot.fields
    index_a = {f.id: (i, f) for i, f in enumerate(fields_a)}
    index_b = {f.id: (i, f) for i, f in enumerate(fields_b)}

    added = [_summary(f) for f in fields_b if f.id not in index_a]
    removed = [_summary(f) for f in fields_a if f.id not in index_b]

    modified: list[FieldDiff] = []
    for pos_b, field_b in enumerate(fields_b):
        if field_b.id not in index_a:
            continue
        pos_a, field_a = index_a[field_b.id]
        changes = diff_mappings(
            _attributes(field_a, pos_a if track_position else None),
            _attributes(field_b, pos_b if track_position else None),
        )
        if changes:
            modified.append(FieldDiff(field_id=field_b.id, changes=changes))

    branding = diff_mappings(
        version_a.schema_snapshot.branding.model_dump(mode="json"),
        version_b.schema_snapshot.branding.model_dump(mode="json"),
    )
    metadata = diff_mappings(
        {"title": version_a.title, "description": version_a.description},
        {"title": version_b.title, "description": version_b.description},
    )
    return FormVersionComparison(
        version_a=version_a.version_number,
        version_b=version_b.version_number,
        fields_added=added,
        fields_removed=removed,
        fields_modified=modified,
        branding_changes=branding,
        metadata_changes=metadata,
    )
