"""Builder state and the typed commands recorded for undo/redo.

Commands store full before/after snapshots of the slice of builder state
they touch rather than deltas, so restoring a side is exact regardless of
what the edit did. ``Command`` is a discriminated union on ``type``; each
variant carries payloads typed for its edit kind.
"""

from __future__ import annotations

import time
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter

from formctl.domain.fields import FormBranding, FormField
from formctl.domain.ids import generate_command_id

type Side = Literal["previous", "current"]


class CommandType(StrEnum):
    ADD_FIELD = "add_field"
    REMOVE_FIELD = "remove_field"
    UPDATE_FIELD = "update_field"
    REORDER_FIELDS = "reorder_fields"
    UPDATE_BRANDING = "update_branding"
    UPDATE_TITLE = "update_title"
    UPDATE_DESCRIPTION = "update_description"
    BULK_UPDATE = "bulk_update"


class BuilderState(BaseModel):
    """The editable part of a form-builder session."""

    model_config = {"frozen": True}

    title: str = ""
    description: str = ""
    fields: list[FormField] = Field(default_factory=list)
    branding: FormBranding = Field(default_factory=FormBranding)


class _CommandBase(BaseModel):
    model_config = {"frozen": True}

    id: str
    timestamp: int
    description: str = ""

    def restore(self, state: BuilderState, side: Side) -> BuilderState:
        raise NotImplementedError


class FieldsCommand(_CommandBase):
    """Any edit to the field list: add, remove, update or reorder."""

    type: Literal["add_field", "remove_field", "update_field", "reorder_fields"]
    previous: list[FormField]
    current: list[FormField]

    def restore(self, state: BuilderState, side: Side) -> BuilderState:
        return state.model_copy(update={"fields": list(getattr(self, side))})


class BrandingCommand(_CommandBase):
    type: Literal["update_branding"]
    previous: FormBranding
    current: FormBranding

    def restore(self, state: BuilderState, side: Side) -> BuilderState:
        return state.model_copy(update={"branding": getattr(self, side)})


class TitleCommand(_CommandBase):
    type: Literal["update_title"]
    previous: str
    current: str

    def restore(self, state: BuilderState, side: Side) -> BuilderState:
        return state.model_copy(update={"title": getattr(self, side)})


class DescriptionCommand(_CommandBase):
    type: Literal["update_description"]
    previous: str
    current: str

    def restore(self, state: BuilderState, side: Side) -> BuilderState:
        return state.model_copy(update={"description": getattr(self, side)})


class BulkCommand(_CommandBase):
    """Several edits applied at once; snapshots the whole builder state."""

    type: Literal["bulk_update"]
    previous: BuilderState
    current: BuilderState

    def restore(self, state: BuilderState, side: Side) -> BuilderState:
        snapshot: BuilderState = getattr(self, side)
        return snapshot


Command = Annotated[
    FieldsCommand | BrandingCommand | TitleCommand | DescriptionCommand | BulkCommand,
    Field(discriminator="type"),
]

_COMMAND_ADAPTER: TypeAdapter[Command] = TypeAdapter(Command)


def parse_command(data: dict[str, Any]) -> Command:
    """Validate a raw command payload into its typed variant."""
    return _COMMAND_ADAPTER.validate_python(data)


def build_command(
    command_type: CommandType | str,
    previous: Any,
    current: Any,
    description: str = "",
) -> Command:
    """Create a command with a fresh ID and timestamp.

    *previous* and *current* may be models or plain data; they are validated
    against the payload type of *command_type*.
    """
    now_ms = int(time.time() * 1000)
    return parse_command(
        {
            "id": generate_command_id(now_ms),
            "type": str(command_type),
            "timestamp": now_ms,
            "previous": _dump(previous),
            "current": _dump(current),
            "description": description,
        }
    )


def _dump(payload: Any) -> Any:
    if isinstance(payload, BaseModel):
        return payload.model_dump()
    if isinstance(payload, list):
        return [_dump(item) for item in payload]
    return payload
