"""ID patterns, validation, and generation.

Two ID strategies:
- Commands: ``cmd_{epoch_ms}_{8 hex}``, random, unique within a session.
- Versions: ``{form_id}@v{version_number}``, derived from the form and its
  version number.

INVARIANT: IDs are permanent. A version ID is never reassigned because
version numbers are never reused.
"""

from __future__ import annotations

import re
import secrets
import time

ID_PATTERNS: dict[str, re.Pattern[str]] = {
    "command": re.compile(r"^cmd_\d+_[0-9a-f]{8}$"),
    "version": re.compile(r"^.+@v[1-9]\d*$"),
}


def generate_command_id(now_ms: int | None = None) -> str:
    """Generate a command ID from the current time and a random suffix."""
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"cmd_{stamp}_{secrets.token_hex(4)}"


def version_id(form_id: str, version_number: int) -> str:
    """Return the permanent ID of *form_id*'s version *version_number*."""
    if version_number < 1:
        msg = f"Version numbers start at 1, got {version_number}"
        raise ValueError(msg)
    return f"{form_id}@v{version_number}"


def validate_id(value: str, kind: str) -> bool:
    """Check whether *value* matches the expected pattern for *kind*."""
    pattern = ID_PATTERNS.get(kind)
    if pattern is None:
        return False
    return pattern.match(value) is not None
