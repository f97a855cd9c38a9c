"""Validation engine — per-field and cross-field checks.

``validate()`` is synchronous and pure. Async rules are not run there;
their keys are listed in ``ValidationResult.pending`` and executed by an
:class:`AsyncValidationTracker`, whose accepted outcomes are merged back
onto the synchronous result.

Rules that cannot be applied (invalid regex, unknown validator, malformed
config) are skipped and reported once each in ``diagnostics``.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from formctl.domain.fields import FormField
from formctl.domain.rules import (
    OPERATOR_ALIASES,
    ConditionOperator,
    Diagnostic,
    EvaluationResult,
)
from formctl.domain.validation import (
    REQUIRED_RULE_ID,
    ValidationIssue,
    ValidationResult,
    ValidationRule,
    ValidationRuleType,
    ValidationSeverity,
    async_check_key,
)
from formctl.domain.values import is_empty, to_number
from formctl.engine.conditions import apply_operator
from formctl.engine.validators import DEFAULT_REGISTRY, ValidatorRegistry

logger = logging.getLogger(__name__)

DEFAULT_REQUIRED_MESSAGE = "This field is required"


class _NotApplicable(Exception):
    """A rule's config cannot be applied; carries the diagnostic."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass(frozen=True, slots=True)
class _Context:
    values: Mapping[str, Any]
    registry: ValidatorRegistry


# ---------------------------------------------------------------------------
# Synchronous checks
# ---------------------------------------------------------------------------


def _check_regex(rule: ValidationRule, value: Any, ctx: _Context) -> bool:
    pattern = rule.rule_config.get("pattern")
    if not isinstance(pattern, str):
        raise _NotApplicable("invalid_rule", f"Rule {rule.id!r} has no regex pattern")
    try:
        compiled = re.compile(pattern)
    except re.error as exc:
        raise _NotApplicable(
            "invalid_regex", f"Rule {rule.id!r} has an invalid pattern: {exc}"
        ) from exc
    return compiled.search(str(value)) is not None


def _bounds(rule: ValidationRule) -> tuple[float | None, float | None]:
    low = rule.rule_config.get("min")
    high = rule.rule_config.get("max")
    low_num = to_number(low) if low is not None else None
    high_num = to_number(high) if high is not None else None
    if (low is not None and low_num is None) or (high is not None and high_num is None):
        raise _NotApplicable("invalid_rule", f"Rule {rule.id!r} has non-numeric bounds")
    return low_num, high_num


def _within(number: float, low: float | None, high: float | None) -> bool:
    if low is not None and number < low:
        return False
    return high is None or number <= high


def _check_range(rule: ValidationRule, value: Any, ctx: _Context) -> bool:
    low, high = _bounds(rule)
    number = to_number(value)
    if number is None:
        return False
    return _within(number, low, high)


def _check_length(rule: ValidationRule, value: Any, ctx: _Context) -> bool:
    low, high = _bounds(rule)
    size = len(value) if isinstance(value, (str, list, tuple)) else len(str(value))
    return _within(size, low, high)


def _check_custom(rule: ValidationRule, value: Any, ctx: _Context) -> bool:
    name = rule.rule_config.get("validator")
    validator = ctx.registry.get(name) if isinstance(name, str) else None
    if validator is None:
        raise _NotApplicable(
            "unknown_validator", f"Rule {rule.id!r} names unknown validator {name!r}"
        )
    try:
        return bool(validator(value, rule.rule_config))
    except Exception as exc:
        raise _NotApplicable(
            "validator_error", f"Validator {name!r} failed for rule {rule.id!r}: {exc}"
        ) from exc


def _check_cross_field(rule: ValidationRule, value: Any, ctx: _Context) -> bool:
    other = rule.rule_config.get("other_field")
    raw_op = str(rule.rule_config.get("operator", ConditionOperator.EQUALS))
    if not isinstance(other, str) or not other:
        raise _NotApplicable("invalid_rule", f"Rule {rule.id!r} has no other_field")
    try:
        op = ConditionOperator(OPERATOR_ALIASES.get(raw_op, raw_op))
    except ValueError as exc:
        raise _NotApplicable(
            "invalid_rule", f"Rule {rule.id!r} has unknown operator {raw_op!r}"
        ) from exc
    return apply_operator(op, value, ctx.values.get(other))


_CHECKS: dict[ValidationRuleType, Callable[[ValidationRule, Any, _Context], bool]] = {
    ValidationRuleType.REGEX: _check_regex,
    ValidationRuleType.RANGE: _check_range,
    ValidationRuleType.LENGTH: _check_length,
    ValidationRuleType.CUSTOM: _check_custom,
    ValidationRuleType.CROSS_FIELD: _check_cross_field,
}


class _Collector:
    def __init__(self) -> None:
        self.errors: dict[str, list[ValidationIssue]] = {}
        self.warnings: dict[str, list[ValidationIssue]] = {}
        self.pending: list[str] = []
        self.diagnostics: list[Diagnostic] = []

    def add(self, issue: ValidationIssue) -> None:
        bucket = self.errors if issue.severity == ValidationSeverity.ERROR else self.warnings
        bucket.setdefault(issue.field_id, []).append(issue)

    def result(self) -> ValidationResult:
        return ValidationResult(
            errors=self.errors,
            warnings=self.warnings,
            pending=self.pending,
            diagnostics=self.diagnostics,
        )


def issue_for(rule: ValidationRule) -> ValidationIssue:
    return ValidationIssue(
        field_id=rule.field_id,
        rule_id=rule.id,
        severity=rule.severity,
        message=rule.error_message,
    )


def _field_order(fields: Sequence[FormField], rules: Sequence[ValidationRule]) -> list[str]:
    declared = [f.id for f in fields]
    known = set(declared)
    extra = sorted({r.field_id for r in rules if r.field_id not in known})
    return declared + extra


def validate(
    fields: Sequence[FormField],
    values: Mapping[str, Any],
    rules: Sequence[ValidationRule],
    *,
    evaluation: EvaluationResult | None = None,
    registry: ValidatorRegistry | None = None,
    required_message: str = DEFAULT_REQUIRED_MESSAGE,
) -> ValidationResult:
    """Run every active synchronous rule against *values*.

    When *evaluation* is given, its ``required_fields`` decide which fields
    are required and its hidden fields are not validated at all. Empty
    values skip every rule except the required check.
    """
    ctx = _Context(values=values, registry=registry or DEFAULT_REGISTRY)
    out = _Collector()

    hidden = set(evaluation.hidden_fields) if evaluation is not None else set()
    if evaluation is not None:
        required = set(evaluation.required_fields)
    else:
        required = {f.id for f in fields if f.required}

    by_field: dict[str, list[ValidationRule]] = {}
    for rule in sorted((r for r in rules if r.is_active), key=lambda r: (r.priority, r.id)):
        by_field.setdefault(rule.field_id, []).append(rule)

    for field_id in _field_order(fields, rules):
        if field_id in hidden:
            continue
        value = values.get(field_id)
        if is_empty(value):
            if field_id in required:
                out.add(
                    ValidationIssue(
                        field_id=field_id,
                        rule_id=REQUIRED_RULE_ID,
                        severity=ValidationSeverity.ERROR,
                        message=required_message,
                    )
                )
            continue
        for rule in by_field.get(field_id, []):
            if rule.rule_type == ValidationRuleType.ASYNC:
                out.pending.append(async_check_key(field_id, rule.id))
                continue
            try:
                passed = _CHECKS[rule.rule_type](rule, value, ctx)
            except _NotApplicable as exc:
                logger.debug("validation rule %s skipped: %s", rule.id, exc.message)
                out.diagnostics.append(
                    Diagnostic(
                        code=exc.code,
                        message=exc.message,
                        rule_id=rule.id,
                        field_ids=[field_id],
                    )
                )
                continue
            if not passed:
                out.add(issue_for(rule))
    return out.result()


# ---------------------------------------------------------------------------
# Async checks
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class _Outcome:
    generation: int
    issue: ValidationIssue | None = None
    diagnostic: Diagnostic | None = None


class AsyncValidationTracker:
    """Runs async validation rules and keeps only the newest outcome per check.

    Every :meth:`dispatch` for a ``(field_id, rule_id)`` pair issues a new
    generation token and cancels the task it supersedes. A resolution is
    accepted only if it carries the latest token for its key; anything
    older is dropped without a trace in the result.

    Superseded tasks are kept until they finish unwinding, so :meth:`settle`
    and :meth:`aclose` leave no task behind when the loop closes.
    """

    def __init__(
        self,
        registry: ValidatorRegistry | None = None,
        *,
        timeout: float = 5.0,
    ) -> None:
        self._registry = registry or DEFAULT_REGISTRY
        self._timeout = timeout
        self._generations: dict[str, int] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._superseded: set[asyncio.Task[None]] = set()
        self._outcomes: dict[str, _Outcome] = {}

    @property
    def pending(self) -> list[str]:
        """Keys whose latest dispatch has not resolved yet."""
        return sorted(key for key, task in self._tasks.items() if not task.done())

    def generation(self, key: str) -> int:
        return self._generations.get(key, 0)

    def dispatch(self, rule: ValidationRule, value: Any) -> int:
        """Start checking *value* against async *rule*; return the new token.

        Must be called from a running event loop.
        """
        key = async_check_key(rule.field_id, rule.id)
        token = self._generations.get(key, 0) + 1
        self._generations[key] = token
        self._outcomes.pop(key, None)
        previous = self._tasks.pop(key, None)
        if previous is not None:
            self._retire(previous)
        self._tasks[key] = asyncio.get_running_loop().create_task(
            self._run(key, token, rule, value)
        )
        return token

    def dispatch_pending(
        self,
        result: ValidationResult,
        rules: Sequence[ValidationRule],
        values: Mapping[str, Any],
    ) -> dict[str, int]:
        """Dispatch every async rule listed in ``result.pending``.

        Returns the generation token issued per key; pass it to :meth:`merge`
        to keep this round's outcomes apart from later rounds.
        """
        wanted = set(result.pending)
        started: dict[str, int] = {}
        for rule in rules:
            key = async_check_key(rule.field_id, rule.id)
            if key in wanted and rule.rule_type == ValidationRuleType.ASYNC:
                started[key] = self.dispatch(rule, values.get(rule.field_id))
        return started

    def accept(
        self,
        key: str,
        generation: int,
        *,
        issue: ValidationIssue | None = None,
        diagnostic: Diagnostic | None = None,
    ) -> bool:
        """Record a resolution for *key* if *generation* is still current."""
        if self._generations.get(key) != generation:
            logger.debug("discarding stale async result for %s (gen %d)", key, generation)
            return False
        self._outcomes[key] = _Outcome(generation, issue, diagnostic)
        return True

    async def _run(self, key: str, token: int, rule: ValidationRule, value: Any) -> None:
        name = rule.rule_config.get("validator")
        validator = self._registry.get_async(name) if isinstance(name, str) else None
        if validator is None:
            self.accept(
                key,
                token,
                diagnostic=_async_diagnostic(
                    rule, "unknown_validator", f"Unknown async validator {name!r}"
                ),
            )
            return
        try:
            passed = await asyncio.wait_for(validator(value, rule.rule_config), self._timeout)
        except TimeoutError:
            self.accept(
                key,
                token,
                diagnostic=_async_diagnostic(
                    rule, "async_timeout", f"Validator {name!r} timed out after {self._timeout}s"
                ),
            )
        except Exception as exc:
            logger.debug("async validator %s failed", name, exc_info=True)
            self.accept(
                key,
                token,
                diagnostic=_async_diagnostic(
                    rule, "validator_error", f"Validator {name!r} failed: {exc}"
                ),
            )
        else:
            self.accept(key, token, issue=None if passed else issue_for(rule))

    def _retire(self, task: asyncio.Task[None]) -> None:
        if task.done():
            return
        task.cancel()
        self._superseded.add(task)
        task.add_done_callback(self._superseded.discard)

    async def settle(self) -> None:
        """Wait until every in-flight check has resolved or been cancelled."""
        while True:
            tasks = [task for task in self._tasks.values() if not task.done()]
            tasks.extend(self._superseded)
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    def cancel_all(self) -> None:
        """Cancel every in-flight check; :meth:`aclose` also waits for them."""
        for task in self._tasks.values():
            self._retire(task)
        self._tasks.clear()

    async def aclose(self) -> None:
        self.cancel_all()
        if self._superseded:
            await asyncio.gather(*self._superseded, return_exceptions=True)

    def merge(
        self,
        result: ValidationResult,
        *,
        generations: Mapping[str, int] | None = None,
    ) -> ValidationResult:
        """Overlay accepted async outcomes onto a synchronous *result*.

        With *generations* (as returned by :meth:`dispatch_pending`), a key
        whose outcome belongs to a later dispatch stays pending: the values
        it answered for are not the ones *result* was computed from.
        """
        errors = {fid: list(issues) for fid, issues in result.errors.items()}
        warnings = {fid: list(issues) for fid, issues in result.warnings.items()}
        diagnostics = list(result.diagnostics)
        pending: list[str] = []
        for key in result.pending:
            outcome = self._outcomes.get(key)
            if outcome is None or (
                generations is not None and outcome.generation != generations.get(key)
            ):
                pending.append(key)
                continue
            if outcome.diagnostic is not None:
                diagnostics.append(outcome.diagnostic)
            issue = outcome.issue
            if issue is not None:
                bucket = errors if issue.severity == ValidationSeverity.ERROR else warnings
                bucket.setdefault(issue.field_id, []).append(issue)
        return ValidationResult(
            errors=errors, warnings=warnings, pending=pending, diagnostics=diagnostics
        )


def _async_diagnostic(rule: ValidationRule, code: str, message: str) -> Diagnostic:
    return Diagnostic(code=code, message=message, rule_id=rule.id, field_ids=[rule.field_id])
