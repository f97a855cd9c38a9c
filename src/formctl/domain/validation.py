"""Validation rule and result models."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from formctl.domain.rules import Diagnostic


class ValidationRuleType(StrEnum):
    REGEX = "regex"
    CUSTOM = "custom"
    CROSS_FIELD = "cross_field"
    ASYNC = "async"
    RANGE = "range"
    LENGTH = "length"


class ValidationSeverity(StrEnum):
    """Only ``error`` blocks submission."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


REQUIRED_RULE_ID = "__required__"


class ValidationRule(BaseModel):
    """``(field_id, rule_type, rule_config, error_message, severity, is_active)``."""

    model_config = {"frozen": True}

    id: str
    field_id: str
    rule_type: ValidationRuleType
    rule_config: dict[str, Any] = Field(default_factory=dict)
    error_message: str = "Invalid value"
    severity: ValidationSeverity = ValidationSeverity.ERROR
    is_active: bool = True
    priority: int = 0


class ValidationIssue(BaseModel):
    """One failed rule for one field."""

    model_config = {"frozen": True}

    field_id: str
    rule_id: str
    severity: ValidationSeverity
    message: str


def _escape_key_part(part: str) -> str:
    return part.replace("\\", "\\\\").replace(":", "\\:")


def async_check_key(field_id: str, rule_id: str) -> str:
    """Stable string key for an in-flight async check.

    ``:`` separates the parts; a ``:`` or ``\\`` inside either id is
    backslash-escaped so distinct pairs never share a key.
    """
    return f"{_escape_key_part(field_id)}:{_escape_key_part(rule_id)}"


class ValidationResult(BaseModel):
    """Per-field errors and warnings plus async checks still in flight.

    Attributes:
        errors: field id -> issues with ``error`` severity.
        warnings: field id -> issues with ``warning`` or ``info`` severity.
        pending: keys (``field_id:rule_id``) of async checks not yet merged.
        diagnostics: rules that could not be applied (bad regex, unknown
            validator, async timeout).
    """

    model_config = {"frozen": True}

    errors: dict[str, list[ValidationIssue]] = Field(default_factory=dict)
    warnings: dict[str, list[ValidationIssue]] = Field(default_factory=dict)
    pending: list[str] = Field(default_factory=list)
    diagnostics: list[Diagnostic] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def blocking_fields(self) -> list[str]:
        """Fields holding at least one error-severity issue."""
        return [field_id for field_id, issues in self.errors.items() if issues]
