"""Rich/JSON output helpers.

The CLI renders ServiceResult for humans (Rich tables and styled
fields) or machines (--json). The formatter layer picks the renderer
for the requested output mode.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sharectl.services.result import ServiceResult


@dataclass(frozen=True)
class OutputSettings:
    """Output mode flags taken from the global CLI options."""

    json_output: bool = False
    quiet: bool = False
    verbose: bool = False


def format_result(result: ServiceResult, *, settings: OutputSettings | None = None) -> str:
    """Format a ServiceResult for display.

    ``--json`` wins over ``--quiet``, which wins over the Rich renderers.
    """
    settings = settings or OutputSettings()
    if settings.json_output:
        return result.model_dump_json(indent=2)
    if settings.quiet:
        from sharectl.output.renderers import render_quiet

        return render_quiet(result)

    from sharectl.output.renderers import render_result

    return render_result(result, verbose=settings.verbose)
