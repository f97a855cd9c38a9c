"""Tests for raw value helpers."""

from __future__ import annotations

import pytest

from formctl.domain.values import is_empty, to_number


class TestIsEmpty:
    @pytest.mark.parametrize("value", [None, "", "   ", [], {}, ()])
    def test_empty(self, value: object) -> None:
        assert is_empty(value) is True

    @pytest.mark.parametrize("value", [0, False, "x", [0], {"a": 1}])
    def test_not_empty(self, value: object) -> None:
        assert is_empty(value) is False


class TestToNumber:
    def test_ints_and_floats(self) -> None:
        assert to_number(3) == 3
        assert to_number(2.5) == 2.5

    def test_numeric_strings(self) -> None:
        assert to_number("12") == 12
        assert to_number(" 1.5 ") == 1.5

    @pytest.mark.parametrize("value", [True, False, "abc", "", None, "nan", float("nan"), [1]])
    def test_not_numbers(self, value: object) -> None:
        assert to_number(value) is None
