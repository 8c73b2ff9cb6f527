"""AppContext — shared Click context for all commands.

Created once by the root CLI group and flows to all subcommands via
``@click.pass_obj``.  Provides lazy Workspace/session initialization, an
event-loop runner for the async session, and centralized result
emission (stdout/stderr routing + exit codes).
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import click

from sharectl.output.formatters import OutputSettings, format_result

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from sharectl.config.settings import SharectlSettings
    from sharectl.infrastructure.workspace import Workspace
    from sharectl.services.result import ServiceResult
    from sharectl.services.session import NetworkSession

logger = logging.getLogger(__name__)


class AppContext:
    """Shared context flowing through Click's command hierarchy.

    The workspace is created on first use so ``--help``, ``--version``,
    and the offline ``passphrase`` commands never touch the database.
    """

    def __init__(self, settings: SharectlSettings) -> None:
        self.settings = settings
        self._workspace: Workspace | None = None
        self._session: NetworkSession | None = None

        from sharectl.config.logging import configure_logging

        configure_logging(verbose=settings.verbose, log_json=settings.log_json)

        if settings.verbose:
            from sharectl.services.telemetry import enable_telemetry

            enable_telemetry()

    @property
    def workspace(self) -> Workspace:
        """The workspace (created lazily, then connected to the conductor)."""
        if self._workspace is None:
            from sharectl.infrastructure.conductor.base import ConductorError
            from sharectl.infrastructure.workspace import Workspace

            self._workspace = Workspace(self.settings)
            self._workspace.init_event_bus(sync=self.settings.sync)
            try:
                self._workspace.connect()
            except ConductorError as exc:
                # The session reports NOT_CONNECTED on every operation.
                logger.warning("Conductor unavailable: %s", exc)
        return self._workspace

    @property
    def session(self) -> NetworkSession:
        if self._session is None:
            from sharectl.services.session import NetworkSession

            self._session = NetworkSession(self.workspace)
        return self._session

    def run(
        self,
        action: Callable[[NetworkSession], Awaitable[ServiceResult]],
        *,
        init: bool = True,
    ) -> ServiceResult:
        """Run *action* against the session on a fresh event loop.

        With *init* the network list and last selection are loaded first;
        a failed load is returned instead of running *action*. Background
        refreshes are awaited before the loop closes.
        """
        session = self.session

        async def _main() -> ServiceResult:
            if init:
                loaded = await session.init()
                if not loaded.ok:
                    return loaded
            try:
                return await action(session)
            finally:
                await session.wait_idle()

        return asyncio.run(_main())

    def emit(self, result: ServiceResult) -> None:
        """Format and output a ServiceResult with correct exit semantics.

        * Success (``result.ok``): writes to stdout, returns normally.
          Warnings go to stderr so they don't pollute piped output.
        * Failure: writes to stderr, exits with code 1.
        """
        settings = OutputSettings(
            json_output=self.settings.json_output,
            quiet=self.settings.quiet,
            verbose=self.settings.verbose,
        )
        output = format_result(result, settings=settings)
        if result.ok:
            click.echo(output)
            if settings.quiet and not settings.json_output:
                for warning in result.warnings:
                    click.echo(f"WARNING: {warning}", err=True)
        else:
            click.echo(output, err=True)
            raise SystemExit(1)

    def close(self) -> None:
        """Flush plugins and release the database."""
        if self._workspace is not None:
            self._workspace.close()
            self._workspace = None
        self._session = None
