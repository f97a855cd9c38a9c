"""Conditional rule models: conditions, actions, rules and evaluation results.

A rule fires when its conditions hold against the current field values and
then applies its actions in order. Rules are evaluated by ascending
``(priority, id)`` so that higher priorities override lower ones.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

FORM_LEVEL_KEY = "__form__"


class ConditionOperator(StrEnum):
    """Operators a condition may apply to a field value."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_OR_EQUAL = "greater_or_equal"
    LESS_OR_EQUAL = "less_or_equal"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    IN = "in"
    NOT_IN = "not_in"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"
    MATCHES_REGEX = "matches_regex"


# Spellings used by older rule documents.
OPERATOR_ALIASES: dict[str, str] = {
    "greater_than_or_equal": "greater_or_equal",
    "less_than_or_equal": "less_or_equal",
}


class ActionType(StrEnum):
    """What a fired rule does to its target field."""

    SHOW_FIELD = "show_field"
    HIDE_FIELD = "hide_field"
    ENABLE_FIELD = "enable_field"
    DISABLE_FIELD = "disable_field"
    SET_VALUE = "set_value"
    CALCULATE_VALUE = "calculate_value"
    SET_REQUIRED = "set_required"
    SET_OPTIONAL = "set_optional"
    SHOW_ERROR = "show_error"
    CLEAR_ERROR = "clear_error"


# Actions that make no sense without a target field.
TARGETED_ACTIONS: frozenset[ActionType] = frozenset(
    {
        ActionType.SHOW_FIELD,
        ActionType.HIDE_FIELD,
        ActionType.ENABLE_FIELD,
        ActionType.DISABLE_FIELD,
        ActionType.SET_VALUE,
        ActionType.CALCULATE_VALUE,
        ActionType.SET_REQUIRED,
        ActionType.SET_OPTIONAL,
    }
)


class Condition(BaseModel):
    """``(field_id, operator, value)``.

    When ``value_field_id`` is set the condition compares against that
    field's current value instead of the literal ``value``.
    """

    model_config = {"frozen": True}

    field_id: str
    operator: ConditionOperator
    value: Any = None
    value_field_id: str | None = None

    @field_validator("operator", mode="before")
    @classmethod
    def _normalize_operator(cls, v: Any) -> Any:
        if isinstance(v, str):
            return OPERATOR_ALIASES.get(v, v)
        return v


class ConditionalAction(BaseModel):
    """One action of a conditional rule."""

    model_config = {"frozen": True}

    type: ActionType
    target_field_id: str | None = None
    value: Any = None
    formula: str | None = None
    error_message: str | None = None


class ConditionalRule(BaseModel):
    """A declarative if/then unit driving field state."""

    model_config = {"frozen": True}

    id: str
    name: str = ""
    conditions: list[Condition] = Field(default_factory=list)
    actions: list[ConditionalAction] = Field(default_factory=list)
    priority: int = 0
    is_active: bool = True
    logic: Literal["and", "or"] = "and"


class Diagnostic(BaseModel):
    """A non-fatal problem found while evaluating rules or validations."""

    model_config = {"frozen": True}

    code: str
    message: str
    rule_id: str | None = None
    field_ids: list[str] = Field(default_factory=list)


class EvaluationResult(BaseModel):
    """Computed visibility/required/calculated/error state for all fields."""

    model_config = {"frozen": True}

    visible_fields: list[str] = Field(default_factory=list)
    hidden_fields: list[str] = Field(default_factory=list)
    disabled_fields: list[str] = Field(default_factory=list)
    required_fields: list[str] = Field(default_factory=list)
    calculated_values: dict[str, Any] = Field(default_factory=dict)
    errors: dict[str, str] = Field(default_factory=dict)
    diagnostics: list[Diagnostic] = Field(default_factory=list)

    def is_visible(self, field_id: str) -> bool:
        return field_id not in self.hidden_fields

    def is_required(self, field_id: str) -> bool:
        return field_id in self.required_fields
