"""Rich Console factory and theme for sharectl output.

Creates Console instances that render to a StringIO buffer, preserving
the ``format_result() -> str`` contract.  In non-TTY environments
(tests, pipes) Rich automatically disables color codes.
"""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.theme import Theme

SHARECTL_THEME = Theme(
    {
        "share.ok": "bold green",
        "share.error": "bold red",
        "share.warning": "bold yellow",
        "share.op": "bold cyan",
        "share.key": "dim",
        "share.id": "bold blue",
        "share.url": "underline blue",
        "share.title": "bold",
        "share.active": "bold green",
        "share.passphrase": "magenta",
        "share.tag": "cyan",
    }
)


def create_console(*, no_color: bool = False, width: int | None = None) -> Console:
    """Create a Console that renders to a StringIO buffer.

    Args:
        no_color: Disable ANSI escape codes (used in tests).
        width: Override terminal width (useful for consistent test output).
    """
    return Console(
        file=StringIO(),
        theme=SHARECTL_THEME,
        no_color=no_color,
        highlight=False,
        width=width or 160,
    )


def get_output(console: Console) -> str:
    """Extract rendered text from a StringIO-backed Console."""
    assert isinstance(console.file, StringIO)
    return console.file.getvalue()
