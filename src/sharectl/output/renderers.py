"""Operation-specific Rich renderers for ServiceResult.

Each renderer writes to a Rich Console (backed by StringIO).  The caller
extracts the rendered text via ``get_output(console)``.

Renderers are dispatched by ``result.op`` in :func:`render_result`.
Unknown ops fall through to a generic key-value renderer.
"""

from __future__ import annotations

import json as _json
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from rich.table import Table
from rich.text import Text

from sharectl.output.console import create_console, get_output

if TYPE_CHECKING:
    from rich.console import Console

    from sharectl.services.result import ServiceResult


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
        return f"ERROR: {result.op} - {msg}"

    # For list results, return IDs only
    items = result.data.get("items") or result.data.get("networks")
    if items and isinstance(items, list):
        return "\n".join(str(item["id"]) for item in items if isinstance(item, dict) and "id" in item)

    if "passphrase" in result.data and result.op == "passphrase_generate":
        return str(result.data["passphrase"])

    return f"OK: {result.op}"


# ── Helpers ───────────────────────────────────────────────────────────


def _format_ms(value: Any) -> str:
    """Format a millisecond epoch timestamp as a UTC ISO string."""
    if not isinstance(value, (int, float)):
        return str(value)
    if not value:
        return "-"
    return datetime.fromtimestamp(value / 1000, tz=UTC).strftime("%Y-%m-%d %H:%M:%S")


def _short(value: str, width: int = 12) -> str:
    return value if len(value) <= width else f"{value[:width]}…"


def _status_line(console: Console, result: ServiceResult) -> None:
    """Print the OK status line."""
    label = Text("OK", style="share.ok")
    op = Text(f"  {result.op}", style="share.op")
    console.print(label, op, end="")
    console.print()


def _field(console: Console, key: str, value: Any) -> None:
    """Print a single indented key-value field."""
    k = Text(f"  {key}: ", style="share.key")
    if key == "id" or key.endswith("_id"):
        v = Text(str(value), style="share.id")
    elif key == "url":
        v = Text(str(value), style="share.url")
    elif key in ("title", "name"):
        v = Text(str(value), style="share.title")
    elif key == "passphrase":
        v = Text(str(value), style="share.passphrase")
    elif key in ("joined_at", "shared_at", "created_at"):
        v = Text(_format_ms(value))
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
            console.print(f"    {k}: {v}")


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
    annotations = span_data.get("annotations")
    if annotations:
        line += "  (" + ", ".join(f"{ak}={av}" for ak, av in annotations.items()) + ")"

    console.print(line)

    for child in span_data.get("children", []):
        _render_telemetry_tree(console, child, indent=indent + 4)


def _warnings(console: Console, result: ServiceResult) -> None:
    for warning in result.warnings:
        console.print(Text(f"  warning: {warning}", style="share.warning"))


# ── Error renderer ────────────────────────────────────────────────────


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    label = Text("ERROR", style="share.error")
    op = Text(f"  {result.op}", style="share.op")
    sep = Text(" - ")
    console.print(label, op, sep, msg)

    if verbose and err:
        console.print(Text(f"  code: {err.code}", style="dim"))
        if err.detail:
            console.print(Text("  detail:", style="dim"))
            for k, v in err.detail.items():
                console.print(f"    {k}: {v}")


# ── Network renderers ─────────────────────────────────────────────────


def _network_table(networks: list[dict[str, Any]], *, verbose: bool = False) -> Table:
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("", no_wrap=True)
    table.add_column("Name", style="share.title")
    table.add_column("ID", style="share.id", no_wrap=True)
    table.add_column("Joined", style="dim")
    if verbose:
        table.add_column("Passphrase", style="share.passphrase")

    for network in networks:
        marker = Text("*", style="share.active") if network.get("is_active") else Text("")
        row: list[Any] = [
            marker,
            str(network.get("name", "")),
            str(network.get("id", "")),
            _format_ms(network.get("joined_at")),
        ]
        if verbose:
            row.append(str(network.get("passphrase", "")))
        table.add_row(*row)
    return table


def _render_networks(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render session_init results as a network table."""
    networks = result.data.get("networks", [])
    if not networks:
        console.print("No networks. Create one with 'sharectl network create'.")
        return
    console.print(_network_table(networks, verbose=verbose))
    console.print(f"\n{len(networks)} networks")
    _warnings(console, result)
    if verbose:
        _render_meta(console, result)


def _render_network(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render create/join results; the passphrase is always shown."""
    _status_line(console, result)
    for key in ("id", "name", "passphrase", "joined_at"):
        if key in result.data:
            _field(console, key, result.data[key])
    _warnings(console, result)
    if verbose:
        _render_meta(console, result)


def _render_mutation(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render switch/leave/enable/rename/delete results."""
    _status_line(console, result)
    for key, value in result.data.items():
        _field(console, key, value)
    _warnings(console, result)
    if verbose:
        _render_meta(console, result)


# ── Share renderers ───────────────────────────────────────────────────


def _render_shares(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render share_list / share_refresh results as a feed table."""
    items = result.data.get("items", [])
    if result.data.get("loading"):
        console.print("Loading shares…")
        return
    if not items:
        console.print(_EMPTY_SHARES.get(result.op, "No shares yet. Add one with 'sharectl share add'."))
        return

    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Title", style="share.title")
    table.add_column("URL", style="share.url")
    table.add_column("Shared", style="dim", no_wrap=True)
    table.add_column("By", no_wrap=True)
    table.add_column("Tags", style="share.tag")
    if verbose:
        table.add_column("ID", style="share.id", no_wrap=True)

    for item in items:
        row = [
            str(item.get("title", "")),
            str(item.get("url", "")),
            _format_ms(item.get("shared_at")),
            _short(str(item.get("shared_by", ""))),
            ", ".join(item.get("tags") or []),
        ]
        if verbose:
            row.append(str(item.get("id", "")))
        table.add_row(*row)

    console.print(table)
    console.print(f"\n{result.data.get('count', len(items))} shares")
    if verbose:
        _render_meta(console, result)


def _render_share_created(
    result: ServiceResult, console: Console, *, verbose: bool = False
) -> None:
    _status_line(console, result)
    item = result.data.get("item", {})
    for key in ("id", "title", "url", "shared_at", "tags"):
        if item.get(key):
            _field(console, key, item[key])
    if verbose:
        _render_meta(console, result)


# ── Feed renderers ────────────────────────────────────────────────────


def _render_feeds(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render feed_list results as a feed table."""
    items = result.data.get("items", [])
    if not items:
        console.print("No feeds yet. Create one with 'sharectl feed create'.")
        return

    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Name", style="share.title")
    table.add_column("ID", style="share.id", no_wrap=True)
    table.add_column("Public", no_wrap=True)
    table.add_column("Created", style="dim", no_wrap=True)
    table.add_column("Description")
    for item in items:
        table.add_row(
            str(item.get("name", "")),
            str(item.get("id", "")),
            "yes" if item.get("is_public") else "no",
            _format_ms(item.get("created_at")),
            str(item.get("description") or ""),
        )

    console.print(table)
    console.print(f"\n{len(items)} feeds")
    if verbose:
        _render_meta(console, result)


def _render_feed_created(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    item = result.data.get("item", {})
    for key in ("id", "name", "description", "is_public", "stewards"):
        if item.get(key) is not None:
            _field(console, key, item[key])
    if verbose:
        _render_meta(console, result)


def _render_members(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    items = result.data.get("items", [])
    if not items:
        console.print("No members.")
        return
    for item in items:
        console.print(Text(str(item.get("id", "")), style="share.id"))
    console.print(f"\n{len(items)} members")
    if verbose:
        _render_meta(console, result)


# ── Passphrase renderers ──────────────────────────────────────────────


def _render_passphrase_check(
    result: ServiceResult, console: Console, *, verbose: bool = False
) -> None:
    d = result.data
    if d.get("valid"):
        console.print(Text("valid", style="share.ok"), Text(f"  {d.get('canonical', '')}"))
    else:
        console.print(
            Text("invalid", style="share.error"),
            Text(f"  {d.get('message') or d.get('reason', '')}"),
        )


# ── Generic fallback ──────────────────────────────────────────────────


def _render_generic(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    for key, value in result.data.items():
        _field(console, key, value)
    _warnings(console, result)
    if verbose:
        _render_meta(console, result)


# ── Dispatch table ────────────────────────────────────────────────────

_EMPTY_SHARES = {
    "feed_shares": "No shares in this feed. Add one with 'sharectl feed add'.",
    "share_week": "No shares that week.",
}

_OP_RENDERERS: dict[str, Any] = {
    # Networks
    "session_init": _render_networks,
    "network_create": _render_network,
    "network_join": _render_network,
    "network_switch": _render_mutation,
    "network_leave": _render_mutation,
    "network_enable": _render_mutation,
    "network_rename": _render_mutation,
    # Shares
    "share_list": _render_shares,
    "share_refresh": _render_shares,
    "share_create": _render_share_created,
    "share_delete": _render_mutation,
    "share_update": _render_share_created,
    "share_week": _render_shares,
    # Feeds
    "feed_list": _render_feeds,
    "feed_create": _render_feed_created,
    "feed_delete": _render_mutation,
    "feed_add_share": _render_mutation,
    "feed_shares": _render_shares,
    "feed_add_member": _render_mutation,
    "feed_members": _render_members,
    # Passphrases
    "passphrase_generate": _render_network,
    "passphrase_validate": _render_passphrase_check,
}
