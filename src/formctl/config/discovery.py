"""Locating and reading ``formctl.toml``.

The file is found the way git finds ``.git/``: walk up from the working
directory until one turns up. ``FORMCTL_CONFIG`` names a file directly and
disables the walk.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

import click

CONFIG_FILENAME = "formctl.toml"
CONFIG_ENV_VAR = "FORMCTL_CONFIG"
TOML_SECTIONS = frozenset({"lock", "history", "validation", "versions", "cache", "store"})

logger = logging.getLogger(__name__)


def find_config(start: Path | None = None) -> Path | None:
    """Return the nearest ``formctl.toml`` at or above *start*, if any.

    When ``FORMCTL_CONFIG`` is set, only that path is considered.
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        path = Path(env_path)
        return path if path.is_file() else None

    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def read_toml(path: Path) -> dict[str, Any]:
    """Parse *path*, keeping only known sections.

    Unknown sections are logged and dropped. Malformed TOML is a
    ``ClickException`` so the CLI reports it without a traceback.
    """
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        msg = f"Invalid TOML in {path}: {exc}"
        raise click.ClickException(msg) from exc
    for name in sorted(set(data) - TOML_SECTIONS):
        logger.warning("ignoring unknown section [%s] in %s", name, path)
    return {name: value for name, value in data.items() if name in TOML_SECTIONS}
