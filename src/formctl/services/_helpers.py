"""Shared service-layer helper functions."""

from __future__ import annotations

from datetime import datetime


def iso(value: datetime | None) -> str | None:
    """Render an aware datetime for result payloads."""
    return value.isoformat() if value is not None else None
