"""Rule engine — evaluates conditional rules against current field values.

``evaluate()`` is a pure function of ``(fields, values, rules)``: it never
mutates its inputs and identical inputs always produce an identical
:class:`EvaluationResult`.

Pipeline:
  1. Keep active rules, order by ``(priority, id)`` ascending.
  2. For each rule whose conditions hold, apply its actions in order.
     Flags (visible/enabled/required) and value assignments are
     last-write-wins, so higher-priority rules override lower ones.
  3. Build the dependency graph of the fired formulas, report each cycle
     once, and skip every target inside or downstream of a cycle.
  4. Evaluate the remaining assignments in topological order.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from formctl.domain.fields import FormField
from formctl.domain.formula import Formula, FormulaError, parse_formula
from formctl.domain.rules import (
    FORM_LEVEL_KEY,
    TARGETED_ACTIONS,
    ActionType,
    ConditionalAction,
    ConditionalRule,
    Diagnostic,
    EvaluationResult,
)
from formctl.engine.conditions import rule_matches
from formctl.engine.dependencies import DependencyGraph

logger = logging.getLogger(__name__)

_FLAG_ACTIONS: dict[ActionType, tuple[str, bool]] = {
    ActionType.SHOW_FIELD: ("hidden", False),
    ActionType.HIDE_FIELD: ("hidden", True),
    ActionType.ENABLE_FIELD: ("disabled", False),
    ActionType.DISABLE_FIELD: ("disabled", True),
    ActionType.SET_REQUIRED: ("required", True),
    ActionType.SET_OPTIONAL: ("required", False),
}


@dataclass(frozen=True, slots=True)
class _Assignment:
    rule_id: str
    value: Any = None
    formula: Formula | None = None


class _Evaluation:
    """Mutable scratch state for one ``evaluate()`` call."""

    def __init__(self, fields: Sequence[FormField]) -> None:
        self.flags: dict[str, dict[str, bool]] = {
            "hidden": {f.id: False for f in fields},
            "disabled": {f.id: False for f in fields},
            "required": {f.id: f.required for f in fields},
        }
        self.assignments: dict[str, _Assignment] = {}
        self.errors: dict[str, str] = {}
        self.diagnostics: list[Diagnostic] = []

    def set_flag(self, flag: str, field_id: str, value: bool) -> None:
        for name, states in self.flags.items():
            if field_id not in states:
                states[field_id] = False
            if name == flag:
                states[field_id] = value

    def diagnose(
        self, code: str, message: str, *, rule_id: str | None = None, fields: list[str]
    ) -> None:
        logger.debug("rule diagnostic %s: %s", code, message)
        self.diagnostics.append(
            Diagnostic(code=code, message=message, rule_id=rule_id, field_ids=fields)
        )

    def flagged(self, flag: str, value: bool = True) -> list[str]:
        return [fid for fid, state in self.flags[flag].items() if state is value]


def ordered_rules(rules: Sequence[ConditionalRule]) -> list[ConditionalRule]:
    """Active rules in evaluation order: ascending priority, then rule id."""
    return sorted((r for r in rules if r.is_active), key=lambda r: (r.priority, r.id))


def _apply_action(state: _Evaluation, rule: ConditionalRule, action: ConditionalAction) -> None:
    target = action.target_field_id
    if action.type == ActionType.SHOW_ERROR:
        state.errors[target or FORM_LEVEL_KEY] = action.error_message or "Invalid value"
        return
    if action.type == ActionType.CLEAR_ERROR:
        state.errors.pop(target or FORM_LEVEL_KEY, None)
        return
    if action.type in TARGETED_ACTIONS and not target:
        state.diagnose(
            "missing_target",
            f"Action {action.type} of rule {rule.id!r} has no target field",
            rule_id=rule.id,
            fields=[],
        )
        return

    if action.type in _FLAG_ACTIONS:
        flag, value = _FLAG_ACTIONS[action.type]
        state.set_flag(flag, target, value)
    elif action.type == ActionType.SET_VALUE:
        state.assignments[target] = _Assignment(rule_id=rule.id, value=action.value)
    elif action.type == ActionType.CALCULATE_VALUE:
        try:
            formula = parse_formula(action.formula or "")
        except FormulaError as exc:
            state.diagnose(
                "formula_error",
                f"Rule {rule.id!r} formula for {target!r} is invalid: {exc}",
                rule_id=rule.id,
                fields=[target],
            )
            return
        state.assignments[target] = _Assignment(rule_id=rule.id, formula=formula)


def _resolve_assignments(state: _Evaluation, values: Mapping[str, Any]) -> dict[str, Any]:
    graph = DependencyGraph(
        {
            target: (a.formula.references if a.formula is not None else ())
            for target, a in state.assignments.items()
        }
    )
    cycles = graph.cycles()
    for members in cycles:
        message = "Circular dependency between calculated fields: " + ", ".join(members)
        state.errors[members[0]] = message
        state.diagnose("dependency_cycle", message, fields=members)
    blocked = graph.blocked(cycles)

    scope = dict(values)
    calculated: dict[str, Any] = {}
    for target in graph.evaluation_order(exclude=blocked):
        assignment = state.assignments.get(target)
        if assignment is None:
            continue
        if assignment.formula is None:
            value = assignment.value
        else:
            try:
                value = assignment.formula.evaluate(scope)
            except FormulaError as exc:
                scope.pop(target, None)
                state.diagnose(
                    "formula_error",
                    f"Rule {assignment.rule_id!r} could not calculate {target!r}: {exc}",
                    rule_id=assignment.rule_id,
                    fields=[target],
                )
                continue
        scope[target] = value
        calculated[target] = value
    return calculated


def evaluate(
    fields: Sequence[FormField],
    values: Mapping[str, Any],
    rules: Sequence[ConditionalRule],
) -> EvaluationResult:
    """Compute field visibility, enablement, required-ness, values and errors.

    Every declared field starts visible, enabled, and required as declared.
    Malformed formulas, missing targets and dependency cycles are skipped
    and reported in ``diagnostics``; evaluation never raises for them.
    """
    state = _Evaluation(fields)
    for rule in ordered_rules(rules):
        if not rule_matches(rule, values):
            continue
        for action in rule.actions:
            _apply_action(state, rule, action)

    calculated = _resolve_assignments(state, values)
    return EvaluationResult(
        visible_fields=state.flagged("hidden", False),
        hidden_fields=state.flagged("hidden"),
        disabled_fields=state.flagged("disabled"),
        required_fields=state.flagged("required"),
        calculated_values=calculated,
        errors=state.errors,
        diagnostics=state.diagnostics,
    )
