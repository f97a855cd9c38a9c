"""Saved form versions, their status lifecycle, and comparison results.

INVARIANT: version numbers start at 1, increase by one per form, and are
never reused, including after a restore.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, computed_field

from formctl.domain.fields import FormSchema


class FormStatus(StrEnum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


VERSION_TRANSITIONS: dict[str, list[str]] = {
    "draft": ["published", "archived"],
    "published": ["archived"],
    "archived": [],
}


def is_valid_transition(
    current: str,
    target: str,
    transitions: dict[str, list[str]] = VERSION_TRANSITIONS,
) -> bool:
    """Check if transitioning from *current* to *target* is allowed."""
    return target in transitions.get(current, [])


class FormVersion(BaseModel):
    """An immutable snapshot of a form definition."""

    model_config = {"frozen": True}

    id: str
    form_id: str
    version_number: int = Field(ge=1)
    schema_snapshot: FormSchema
    title: str
    description: str = ""
    status: FormStatus = FormStatus.DRAFT
    created_at: datetime
    change_summary: str | None = None
    created_by: str | None = None
    published_at: datetime | None = None


class FieldSummary(BaseModel):
    model_config = {"frozen": True}

    id: str
    label: str
    type: str


class AttributeChange(BaseModel):
    model_config = {"frozen": True}

    old: Any = None
    new: Any = None


class FieldDiff(BaseModel):
    model_config = {"frozen": True}

    field_id: str
    changes: dict[str, AttributeChange]


class FormVersionComparison(BaseModel):
    """Structural differences going from ``version_a`` to ``version_b``."""

    model_config = {"frozen": True}

    version_a: int
    version_b: int
    fields_added: list[FieldSummary] = Field(default_factory=list)
    fields_removed: list[FieldSummary] = Field(default_factory=list)
    fields_modified: list[FieldDiff] = Field(default_factory=list)
    branding_changes: dict[str, AttributeChange] = Field(default_factory=dict)
    metadata_changes: dict[str, AttributeChange] = Field(default_factory=dict)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def summary(self) -> dict[str, int]:
        return {
            "fields_added": len(self.fields_added),
            "fields_removed": len(self.fields_removed),
            "fields_modified": len(self.fields_modified),
            "branding_changes": len(self.branding_changes),
            "metadata_changes": len(self.metadata_changes),
        }

    @property
    def has_changes(self) -> bool:
        return any(self.summary.values())
