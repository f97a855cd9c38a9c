"""Rich Console factory and theme for formctl output.

Creates Console instances that render to a StringIO buffer, preserving
the ``format_result() -> str`` contract.  In non-TTY environments
(tests, pipes) Rich automatically disables color codes.
"""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.theme import Theme

FORMCTL_THEME = Theme(
    {
        "form.ok": "bold green",
        "form.error": "bold red",
        "form.warning": "bold yellow",
        "form.info": "cyan",
        "form.op": "bold cyan",
        "form.key": "dim",
        "form.id": "bold blue",
        "form.title": "bold",
        "form.status.draft": "yellow",
        "form.status.published": "green",
        "form.status.archived": "dim",
        "form.added": "green",
        "form.removed": "red",
        "form.modified": "yellow",
    }
)

_STATUS_STYLES: dict[str, str] = {
    "draft": "form.status.draft",
    "published": "form.status.published",
    "archived": "form.status.archived",
}

_SEVERITY_STYLES: dict[str, str] = {
    "error": "form.error",
    "warning": "form.warning",
    "info": "form.info",
}


def create_console(*, no_color: bool = False, width: int | None = None) -> Console:
    """Create a Console that renders to a StringIO buffer.

    Args:
        no_color: Disable ANSI escape codes (used in tests).
        width: Override terminal width (useful for consistent test output).
    """
    return Console(
        file=StringIO(),
        theme=FORMCTL_THEME,
        no_color=no_color,
        highlight=False,
        width=width or 120,
    )


def get_output(console: Console) -> str:
    """Extract rendered text from a StringIO-backed Console."""
    assert isinstance(console.file, StringIO)
    return console.file.getvalue()


def style_for_status(status: str) -> str:
    """Return the Rich style name for a version status."""
    return _STATUS_STYLES.get(status, "")


def style_for_severity(severity: str) -> str:
    return _SEVERITY_STYLES.get(severity, "")
