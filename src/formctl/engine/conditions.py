"""Condition operators and rule matching.

Every operator is total: incomparable values, missing fields and invalid
regular expressions make a condition false, never raise.
"""

from __future__ import annotations

import functools
import operator
import re
from collections.abc import Callable, Mapping
from typing import Any

from formctl.domain.rules import Condition, ConditionalRule, ConditionOperator
from formctl.domain.values import is_empty, to_number


@functools.lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str] | None:
    try:
        return re.compile(pattern)
    except re.error:
        return None


def _equals(actual: Any, expected: Any) -> bool:
    left, right = to_number(actual), to_number(expected)
    if left is not None and right is not None:
        return left == right
    return bool(actual == expected)


def _ordered(actual: Any, expected: Any) -> tuple[Any, Any] | None:
    """Return a comparable pair, preferring numbers, else two strings."""
    left, right = to_number(actual), to_number(expected)
    if left is not None and right is not None:
        return left, right
    if isinstance(actual, str) and isinstance(expected, str):
        return actual, expected
    return None


def _members(expected: Any) -> list[Any]:
    if isinstance(expected, str):
        return [part.strip() for part in expected.split(",")]
    if isinstance(expected, (list, tuple, set, frozenset)):
        return list(expected)
    return [expected]


def _is_member(actual: Any, expected: Any) -> bool:
    members = _members(expected)
    candidates = actual if isinstance(actual, (list, tuple)) else [actual]
    return any(_equals(item, member) for item in candidates for member in members)


def _contains(actual: Any, expected: Any) -> bool:
    if isinstance(actual, str):
        return expected is not None and str(expected) in actual
    if isinstance(actual, (list, tuple, set, frozenset)):
        return any(_equals(item, expected) for item in actual)
    return False


def _matches_regex(actual: Any, expected: Any) -> bool:
    if actual is None or not isinstance(expected, str):
        return False
    pattern = _compile(expected)
    return pattern is not None and pattern.search(str(actual)) is not None


def _compare_with(test: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def compare(actual: Any, expected: Any) -> bool:
        pair = _ordered(actual, expected)
        if pair is None:
            return False
        return bool(test(*pair))

    return compare


_OPERATORS: dict[ConditionOperator, Callable[[Any, Any], bool]] = {
    ConditionOperator.EQUALS: _equals,
    ConditionOperator.NOT_EQUALS: lambda a, e: not _equals(a, e),
    ConditionOperator.GREATER_THAN: _compare_with(operator.gt),
    ConditionOperator.LESS_THAN: _compare_with(operator.lt),
    ConditionOperator.GREATER_OR_EQUAL: _compare_with(operator.ge),
    ConditionOperator.LESS_OR_EQUAL: _compare_with(operator.le),
    ConditionOperator.CONTAINS: _contains,
    ConditionOperator.NOT_CONTAINS: lambda a, e: not _contains(a, e),
    ConditionOperator.STARTS_WITH: lambda a, e: isinstance(a, str) and a.startswith(str(e)),
    ConditionOperator.ENDS_WITH: lambda a, e: isinstance(a, str) and a.endswith(str(e)),
    ConditionOperator.IN: _is_member,
    ConditionOperator.NOT_IN: lambda a, e: not _is_member(a, e),
    ConditionOperator.IS_EMPTY: lambda a, _e: is_empty(a),
    ConditionOperator.IS_NOT_EMPTY: lambda a, _e: not is_empty(a),
    ConditionOperator.MATCHES_REGEX: _matches_regex,
}


def apply_operator(op: ConditionOperator, actual: Any, expected: Any) -> bool:
    """Apply *op* to a field's *actual* value and the *expected* operand."""
    return bool(_OPERATORS[op](actual, expected))


def condition_holds(condition: Condition, values: Mapping[str, Any]) -> bool:
    actual = values.get(condition.field_id)
    expected = (
        values.get(condition.value_field_id)
        if condition.value_field_id is not None
        else condition.value
    )
    return apply_operator(condition.operator, actual, expected)


def rule_matches(rule: ConditionalRule, values: Mapping[str, Any]) -> bool:
    """True if *rule*'s conditions hold. A rule without conditions always fires."""
    if not rule.conditions:
        return True
    results = (condition_holds(c, values) for c in rule.conditions)
    if rule.logic == "or":
        return any(results)
    return all(results)
