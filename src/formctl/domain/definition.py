"""FormDefinition — the complete document a builder session edits.

This is also the JSON shape the CLI reads from ``FORM_FILE``.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from formctl.domain.commands import BuilderState
from formctl.domain.fields import FormBranding, FormField, FormSchema
from formctl.domain.rules import ConditionalRule
from formctl.domain.validation import ValidationRule


class FormDefinition(BaseModel):
    model_config = {"frozen": True}

    title: str = ""
    description: str = ""
    fields: list[FormField] = Field(default_factory=list)
    branding: FormBranding = Field(default_factory=FormBranding)
    conditional_rules: list[ConditionalRule] = Field(default_factory=list)
    validation_rules: list[ValidationRule] = Field(default_factory=list)

    def to_schema(self) -> FormSchema:
        return FormSchema(fields=list(self.fields), branding=self.branding)

    def to_builder_state(self) -> BuilderState:
        return BuilderState(
            title=self.title,
            description=self.description,
            fields=list(self.fields),
            branding=self.branding,
        )

    def with_state(self, state: BuilderState) -> FormDefinition:
        """Return a copy carrying *state*'s title, description, fields and branding."""
        return self.model_copy(
            update={
                "title": state.title,
                "description": state.description,
                "fields": list(state.fields),
                "branding": state.branding,
            }
        )
