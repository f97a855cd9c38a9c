"""EvaluationService — rule evaluation and validation as ServiceResults.

Wraps the pure engines for interfaces that speak the service contract.
Validation first evaluates the rules so that hidden fields are skipped
and rule-driven required flags apply, then runs any async rules to
completion before answering.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from formctl.domain.definition import FormDefinition
from formctl.domain.rules import EvaluationResult
from formctl.domain.validation import ValidationResult
from formctl.engine.rules import evaluate
from formctl.engine.validation import DEFAULT_REQUIRED_MESSAGE, AsyncValidationTracker, validate
from formctl.engine.validators import DEFAULT_REGISTRY, ValidatorRegistry
from formctl.services.result import ServiceResult
from formctl.services.telemetry import trace_span, traced

if TYPE_CHECKING:
    from formctl.config.settings import FormctlSettings

logger = logging.getLogger(__name__)


def evaluation_payload(result: EvaluationResult) -> dict[str, Any]:
    return result.model_dump(mode="json")


def validation_payload(result: ValidationResult) -> dict[str, Any]:
    data = result.model_dump(mode="json")
    data["is_valid"] = result.is_valid
    data["blocking_fields"] = result.blocking_fields
    return data


async def validate_definition(
    definition: FormDefinition,
    values: Mapping[str, Any],
    *,
    registry: ValidatorRegistry | None = None,
    timeout: float = 5.0,
    required_message: str = DEFAULT_REQUIRED_MESSAGE,
    tracker: AsyncValidationTracker | None = None,
) -> ValidationResult:
    """Evaluate rules, validate synchronously, then settle async checks.

    A long-lived *tracker* lets a newer call supersede the async checks of
    an older one still in flight; the older call then reports those keys
    as pending instead of answering with outcomes for newer values.
    """
    evaluation = evaluate(definition.fields, values, definition.conditional_rules)
    result = validate(
        definition.fields,
        values,
        definition.validation_rules,
        evaluation=evaluation,
        registry=registry,
        required_message=required_message,
    )
    if not result.pending:
        return result
    if tracker is None:
        tracker = AsyncValidationTracker(registry, timeout=timeout)
    generations = tracker.dispatch_pending(result, definition.validation_rules, values)
    await tracker.settle()
    return tracker.merge(result, generations=generations)


class EvaluationService:
    """Evaluate and validate a :class:`FormDefinition` against field values."""

    def __init__(
        self,
        settings: FormctlSettings,
        *,
        registry: ValidatorRegistry | None = None,
    ) -> None:
        self._settings = settings
        self._registry = registry or DEFAULT_REGISTRY

    @traced
    def evaluate(self, definition: FormDefinition, values: Mapping[str, Any]) -> ServiceResult:
        result = evaluate(definition.fields, values, definition.conditional_rules)
        warnings = [d.message for d in result.diagnostics]
        return ServiceResult(
            ok=True, op="evaluate", data=evaluation_payload(result), warnings=warnings
        )

    async def validate_async(
        self, definition: FormDefinition, values: Mapping[str, Any]
    ) -> ValidationResult:
        return await validate_definition(
            definition,
            values,
            registry=self._registry,
            timeout=self._settings.validation.async_timeout_seconds,
            required_message=self._settings.validation.required_message,
        )

    @traced
    def validate(self, definition: FormDefinition, values: Mapping[str, Any]) -> ServiceResult:
        """Validate *values*; failing validation is still an ``ok`` result.

        ``data["is_valid"]`` tells whether submission is allowed.
        """
        with trace_span("validate"):
            result = asyncio.run(self.validate_async(definition, values))
        warnings = [d.message for d in result.diagnostics]
        logger.debug(
            "validation finished: %d blocking field(s)", len(result.blocking_fields)
        )
        return ServiceResult(
            ok=True, op="validate", data=validation_payload(result), warnings=warnings
        )
