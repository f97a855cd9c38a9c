"""Helpers for interpreting raw field values.

Form inputs arrive loosely typed: numbers often come in as strings and
"empty" covers None, blank strings and empty collections.
"""

from __future__ import annotations

import math
from typing import Any


def is_empty(value: Any) -> bool:
    """True for None, blank strings and empty collections."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return len(value) == 0
    return False


def to_number(value: Any) -> int | float | None:
    """Coerce *value* to a number, or None if it is not numeric.

    Booleans are not numbers here. Numeric strings like ``"12.5"`` are.

    Examples:
        >>> to_number("12")
        12
        >>> to_number(" 1.5 ")
        1.5
        >>> to_number("abc") is None
        True
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return None if math.isnan(value) else value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            return None
        if math.isnan(number) or math.isinf(number):
            return None
        return number
    return None
