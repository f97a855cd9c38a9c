"""Form field, branding and schema models.

Fields and branding accept extra attributes: saved snapshots may carry
keys this version of formctl does not know about, and the version differ
must still compare them.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

FIELD_TYPES: frozenset[str] = frozenset(
    {
        "text",
        "textarea",
        "email",
        "number",
        "date",
        "select",
        "radio",
        "checkbox",
        "gps",
        "file",
        "phone",
        "url",
        "color",
        "range",
        "rating",
        "signature",
    }
)


class FieldOption(BaseModel):
    """One choice of a select/radio/checkbox field."""

    model_config = {"frozen": True}

    label: str
    value: str


class FieldValidation(BaseModel):
    """Inline constraints declared on the field itself."""

    model_config = {"frozen": True}

    min_length: int | None = None
    max_length: int | None = None
    min: float | None = None
    max: float | None = None
    pattern: str | None = None


class FormField(BaseModel):
    """A single field of a form definition."""

    model_config = ConfigDict(frozen=True, extra="allow")

    id: str
    type: str = "text"
    label: str = ""
    required: bool = False
    placeholder: str | None = None
    help_text: str | None = None
    options: list[FieldOption] | None = None
    default_value: Any = None
    min: float | None = None
    max: float | None = None
    step: float | None = None
    validation: FieldValidation | None = None


class FormBranding(BaseModel):
    """Visual branding of a form. Compared shallowly, key by key."""

    model_config = ConfigDict(frozen=True, extra="allow")

    logo_url: str | None = None
    banner_url: str | None = None
    primary_color: str | None = None
    accent_color: str | None = None
    header_text: str | None = None
    footer_text: str | None = None


class FormSchema(BaseModel):
    """The structural part of a form: its fields and branding."""

    model_config = {"frozen": True}

    fields: list[FormField] = Field(default_factory=list)
    branding: FormBranding = Field(default_factory=FormBranding)

    def field_ids(self) -> list[str]:
        return [f.id for f in self.fields]
