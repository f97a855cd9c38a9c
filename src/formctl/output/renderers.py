"""Operation-specific Rich renderers for ServiceResult.

Each renderer writes to a Rich Console (backed by StringIO).  The caller
extracts the rendered text via ``get_output(console)``.

Renderers are dispatched by ``result.op`` in :func:`render_result`.
Unknown ops fall through to a generic key-value renderer.
"""

from __future__ import annotations

import json as _json
from typing import TYPE_CHECKING, Any

from rich.markup import escape
from rich.table import Table
from rich.text import Text

from formctl.output.console import (
    create_console,
    get_output,
    style_for_severity,
    style_for_status,
)

if TYPE_CHECKING:
    from rich.console import Console

    from formctl.services.result import ServiceResult


# ── Public API ────────────────────────────────────────────────────────


def render_result(result: ServiceResult, *, verbose: bool = False) -> str:
    """Render a ServiceResult to a styled string via Rich.

    Returns plain text (no ANSI) when Rich detects no terminal,
    which is the case inside Click's CliRunner and piped output.
    """
    console = create_console()

    if result.ok:
        renderer = _OP_RENDERERS.get(result.op, _render_generic)
        renderer(result, console, verbose=verbose)
    else:
        _render_error(result, console, verbose=verbose)

    return get_output(console).rstrip("\n")


def render_quiet(result: ServiceResult) -> str:
    """Render minimal output for ``--quiet`` mode."""
    if not result.ok:
        msg = result.error.message if result.error else "Unknown error"
        return f"ERROR: {result.op}: {msg}"

    versions = result.data.get("versions")
    if versions and isinstance(versions, list):
        return "\n".join(str(v.get("version_number", "")) for v in versions)
    if result.op == "validate":
        return "valid" if result.data.get("is_valid") else "invalid"

    return f"OK: {result.op}"


# ── Helpers ───────────────────────────────────────────────────────────


def _status_line(console: Console, result: ServiceResult) -> None:
    """Print the OK/ERROR status line."""
    label = Text("OK", style="form.ok")
    op = Text(f"  {result.op}", style="form.op")
    console.print(label, op, end="")
    console.print()


def _field(console: Console, key: str, value: Any) -> None:
    """Print a single indented key-value field."""
    k = Text(f"  {key}: ", style="form.key")
    if key == "id" or key.endswith("_id"):
        v = Text(str(value), style="form.id")
    elif key == "title":
        v = Text(str(value), style="form.title")
    elif key == "status":
        v = Text(str(value), style=style_for_status(str(value)))
    elif isinstance(value, (dict, list)):
        v = Text(_json.dumps(value, separators=(",", ":")))
    else:
        v = Text(str(value))
    console.print(k, v, end="")
    console.print()


def _render_meta(console: Console, result: ServiceResult) -> None:
    """Print meta block including telemetry span tree (verbose only)."""
    if not result.meta:
        return

    console.print()
    console.print(Text("  meta:", style="dim"))

    for k, v in result.meta.items():
        if k == "telemetry":
            _render_telemetry_tree(console, v, indent=4)
        else:
            console.print(escape(f"    {k}: {v}"))


def _render_telemetry_tree(
    console: Console,
    span_data: dict[str, Any],
    indent: int = 4,
) -> None:
    """Render a hierarchical span tree with color-coded timing."""
    prefix = " " * indent
    name = span_data.get("name", "?")
    duration = span_data.get("duration_ms", 0.0)

    if duration > 1000:
        style = "bold red"
    elif duration > 100:
        style = "yellow"
    else:
        style = "dim"

    line = f"{prefix}[{style}]{duration:>8.2f}ms[/{style}]  {name}"
    annotations = span_data.get("annotations") or {}
    if annotations:
        line += "  (" + ", ".join(f"{k}={v}" for k, v in annotations.items()) + ")"
    console.print(line)

    for child in span_data.get("children", []):
        _render_telemetry_tree(console, child, indent=indent + 4)


def _render_diagnostics(console: Console, diagnostics: list[dict[str, Any]]) -> None:
    if not diagnostics:
        return
    console.print()
    for diag in diagnostics:
        rule = f" [{diag['rule_id']}]" if diag.get("rule_id") else ""
        detail = escape(f"{rule}: {diag.get('message', '')}")
        console.print(f"  [form.warning]{diag.get('code', 'diagnostic')}[/form.warning]{detail}")


# ── Error renderer ────────────────────────────────────────────────────


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    label = Text("ERROR", style="form.error")
    op = Text(f"  {result.op}", style="form.op")
    sep = Text(": ")
    console.print(label, op, sep, Text(msg))

    if verbose and err and err.detail:
        console.print(Text("  detail:", style="dim"))
        for k, v in err.detail.items():
            console.print(escape(f"    {k}: {v}"))


# ── Lock renderers ────────────────────────────────────────────────────


def _render_lock(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render acquire/renew/release/status results."""
    _status_line(console, result)
    for key in (
        "form_id",
        "holder_id",
        "is_locked",
        "lock_expires_at",
        "lock_version",
        "released",
        "taken_over_from",
        "previous_holder",
    ):
        if result.data.get(key) is not None:
            _field(console, key, result.data[key])
    if result.data.get("expired"):
        console.print("  [form.warning]previous lease expired[/form.warning]")
    if verbose:
        _render_meta(console, result)


def _render_cleanup(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    _field(console, "cleared", result.data.get("count", 0))
    for form_id in result.data.get("cleared", []):
        console.print(escape(f"  - {form_id}"))


# ── Version renderers ─────────────────────────────────────────────────


def _render_version(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render a single saved/transitioned version."""
    _status_line(console, result)
    version = result.data.get("version", {})
    for key in ("id", "version_number", "title", "status", "created_at", "change_summary"):
        if version.get(key) is not None:
            _field(console, key, version[key])
    if result.data.get("restored_from") is not None:
        _field(console, "restored_from", result.data["restored_from"])
    if result.data.get("archived"):
        _field(console, "archived", ", ".join(str(n) for n in result.data["archived"]))
    if verbose:
        fields = version.get("schema_snapshot", {}).get("fields", [])
        _field(console, "fields", len(fields))
        _render_meta(console, result)


def _render_version_table(
    result: ServiceResult, console: Console, *, verbose: bool = False
) -> None:
    versions = result.data.get("versions", [])
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("#", style="form.id", justify="right", no_wrap=True)
    table.add_column("Title", style="form.title")
    table.add_column("Status")
    table.add_column("Created", style="dim")
    table.add_column("Summary")
    if verbose:
        table.add_column("By", style="dim")

    for version in versions:
        status = str(version.get("status", ""))
        row: list[Any] = [
            str(version.get("version_number", "")),
            str(version.get("title", "")),
            Text(status, style=style_for_status(status)),
            str(version.get("created_at", "")),
            str(version.get("change_summary") or ""),
        ]
        if verbose:
            row.append(str(version.get("created_by") or ""))
        table.add_row(*row)

    console.print(table)
    console.print(f"\n{result.data.get('count', len(versions))} versions")


def _render_comparison(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render a version diff grouped by kind of change."""
    comparison = result.data.get("comparison", {})
    a, b = comparison.get("version_a"), comparison.get("version_b")
    console.print(f"[bold]{escape(str(result.data.get('form_id', '')))}[/bold]  v{a} -> v{b}")

    if not any(comparison.get("summary", {}).values()):
        console.print("[form.ok]OK[/form.ok]  No differences.")
        return

    for field in comparison.get("fields_added", []):
        console.print(
            f"  [form.added]+ {escape(field['id'])}[/form.added]  "
            + escape(f"{field['label']} ({field['type']})")
        )
    for field in comparison.get("fields_removed", []):
        console.print(
            f"  [form.removed]- {escape(field['id'])}[/form.removed]  "
            + escape(f"{field['label']} ({field['type']})")
        )
    for diff in comparison.get("fields_modified", []):
        console.print(f"  [form.modified]~ {escape(diff['field_id'])}[/form.modified]")
        for attr, change in diff["changes"].items():
            console.print(escape(f"      {attr}: {change.get('old')!r} -> {change.get('new')!r}"))

    for section in ("branding_changes", "metadata_changes"):
        changes = comparison.get(section, {})
        if changes:
            console.print(f"\n[bold]{section.replace('_', ' ')}[/bold]")
            for attr, change in changes.items():
                console.print(escape(f"  {attr}: {change.get('old')!r} -> {change.get('new')!r}"))


# ── Evaluation renderers ──────────────────────────────────────────────


def _render_evaluation(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Field", style="form.id", no_wrap=True)
    table.add_column("Visible")
    table.add_column("Required")
    table.add_column("Disabled")
    table.add_column("Value")
    table.add_column("Error", style="form.error")

    hidden = set(d.get("hidden_fields", []))
    required = set(d.get("required_fields", []))
    disabled = set(d.get("disabled_fields", []))
    calculated = d.get("calculated_values", {})
    errors = d.get("errors", {})
    field_ids = list(d.get("visible_fields", [])) + sorted(hidden)
    field_ids += sorted(set(calculated) - set(field_ids))
    field_ids += sorted(set(errors) - set(field_ids))

    for field_id in field_ids:
        table.add_row(
            field_id,
            "no" if field_id in hidden else "yes",
            "yes" if field_id in required else "",
            "yes" if field_id in disabled else "",
            "" if field_id not in calculated else str(calculated[field_id]),
            errors.get(field_id, ""),
        )

    console.print(table)
    _render_diagnostics(console, d.get("diagnostics", []))


def _render_validation(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    if d.get("is_valid") and not d.get("warnings"):
        console.print("[form.ok]OK[/form.ok]  All fields valid.")
        _render_diagnostics(console, d.get("diagnostics", []))
        return

    for bucket in ("errors", "warnings"):
        for field_id, issues in d.get(bucket, {}).items():
            for issue in issues:
                sev = str(issue.get("severity", "error"))
                style = style_for_severity(sev)
                prefix = f"[{style}]{sev}[/{style}]" if style else sev
                rule = f" ({issue['rule_id']})" if verbose else ""
                detail = escape(f"[{field_id}]{rule}: {issue.get('message', '')}")
                console.print(f"  {prefix} {detail}")

    _render_diagnostics(console, d.get("diagnostics", []))
    blocking = d.get("blocking_fields", [])
    if blocking:
        names = escape(", ".join(blocking))
        console.print(f"\n{len(blocking)} field(s) block submission: {names}")
    else:
        console.print("\n[form.ok]OK[/form.ok]  Submission allowed.")


# ── Generic fallback ──────────────────────────────────────────────────


def _render_generic(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Fallback renderer: status line + all data as key-value pairs."""
    _status_line(console, result)
    for key, value in result.data.items():
        _field(console, key, value)
    if verbose:
        _render_meta(console, result)


# ── Dispatch table ────────────────────────────────────────────────────

_OP_RENDERERS: dict[str, Any] = {
    # Locks
    "acquire_lock": _render_lock,
    "renew_lock": _render_lock,
    "release_lock": _render_lock,
    "lock_status": _render_lock,
    "force_release_lock": _render_lock,
    "cleanup_expired_locks": _render_cleanup,
    # Versions
    "create_version": _render_version,
    "get_version": _render_version,
    "restore_version": _render_version,
    "publish_version": _render_version,
    "archive_version": _render_version,
    "list_versions": _render_version_table,
    "compare_versions": _render_comparison,
    # Rules
    "evaluate": _render_evaluation,
    "validate": _render_validation,
}
