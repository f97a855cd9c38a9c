"""Named validators for ``custom`` and ``async`` validation rules.

A validation rule names its check through ``rule_config["validator"]``.
Synchronous validators are plain callables ``(value, config) -> bool``;
async validators are coroutine functions with the same shape, typically
calling out to a remote service (uniqueness checks and the like).

Built-in names are reserved and cannot be overridden.
"""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from formctl.domain.values import to_number

type Validator = Callable[[Any, Mapping[str, Any]], bool]
type AsyncValidator = Callable[[Any, Mapping[str, Any]], Awaitable[bool]]

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_URL_RE = re.compile(r"^https?://[^\s/$.?#][^\s]*$", re.IGNORECASE)
_PHONE_RE = re.compile(r"^\+?[0-9 ().-]{7,20}$")


def _is_email(value: Any, config: Mapping[str, Any]) -> bool:
    return isinstance(value, str) and _EMAIL_RE.match(value.strip()) is not None


def _is_url(value: Any, config: Mapping[str, Any]) -> bool:
    return isinstance(value, str) and _URL_RE.match(value.strip()) is not None


def _is_phone(value: Any, config: Mapping[str, Any]) -> bool:
    if not isinstance(value, str) or _PHONE_RE.match(value.strip()) is None:
        return False
    digits = sum(c.isdigit() for c in value)
    return 7 <= digits <= 15


def _is_integer(value: Any, config: Mapping[str, Any]) -> bool:
    number = to_number(value)
    return number is not None and float(number).is_integer()


BUILTIN_VALIDATORS: dict[str, Validator] = {
    "email": _is_email,
    "url": _is_url,
    "phone": _is_phone,
    "integer": _is_integer,
}


class ValidatorRegistry:
    """Lookup table of named sync and async validators."""

    def __init__(self) -> None:
        self._sync: dict[str, Validator] = dict(BUILTIN_VALIDATORS)
        self._async: dict[str, AsyncValidator] = {}

    def register(self, name: str, validator: Validator) -> None:
        """Register a synchronous validator under *name*.

        Raises:
            ValueError: If *name* is empty, built-in, or already taken by
                a different callable.
        """
        key = self._check_name(name)
        existing = self._sync.get(key)
        if existing is not None and existing is not validator:
            msg = f"Validator {key!r} is already registered"
            raise ValueError(msg)
        self._sync[key] = validator

    def register_async(self, name: str, validator: AsyncValidator) -> None:
        """Register a coroutine validator under *name*."""
        key = self._check_name(name)
        existing = self._async.get(key)
        if existing is not None and existing is not validator:
            msg = f"Async validator {key!r} is already registered"
            raise ValueError(msg)
        self._async[key] = validator

    def get(self, name: str) -> Validator | None:
        return self._sync.get(name)

    def get_async(self, name: str) -> AsyncValidator | None:
        return self._async.get(name)

    def names(self) -> list[str]:
        return sorted(self._sync)

    @staticmethod
    def _check_name(name: str) -> str:
        key = name.strip()
        if not key:
            msg = "Validator name must not be empty"
            raise ValueError(msg)
        if key in BUILTIN_VALIDATORS:
            msg = f"Validator {key!r} conflicts with a built-in validator"
            raise ValueError(msg)
        return key


# Shared registry used when callers do not pass their own.
DEFAULT_REGISTRY = ValidatorRegistry()


def register_validator(name: str, validator: Validator) -> None:
    DEFAULT_REGISTRY.register(name, validator)


def register_async_validator(name: str, validator: AsyncValidator) -> None:
    DEFAULT_REGISTRY.register_async(name, validator)
