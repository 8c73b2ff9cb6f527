"""Root CLI group for sharectl with global flags and command registration."""

from __future__ import annotations

import click

from sharectl import __version__
from sharectl.commands import register_commands
from sharectl.commands._context import AppContext
from sharectl.config.settings import SharectlSettings


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="sharectl")
@click.option("--json", "json_output", is_flag=True, help="Structured JSON output.")
@click.option("-q", "--quiet", is_flag=True, help="Minimal output (IDs only for lists).")
@click.option("-v", "--verbose", is_flag=True, help="Detailed output with debug info.")
@click.option("--log-json", is_flag=True, help="Structured JSON log output to stderr.")
@click.option("-c", "--config", "config_path", default=None, help="Override config file path.")
@click.option("--sync", is_flag=True, help="Force synchronous plugin event dispatch.")
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    quiet: bool,
    verbose: bool,
    log_json: bool,
    config_path: str | None,
    sync: bool,
) -> None:
    """sharectl - share links inside private, passphrase-addressed networks."""
    ctx.ensure_object(dict)
    settings = SharectlSettings.from_cli(
        config_path=config_path,
        json_output=json_output,
        quiet=quiet,
        verbose=verbose,
        log_json=log_json,
        sync=sync,
    )
    app = AppContext(settings)
    ctx.obj = app
    ctx.call_on_close(app.close)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


register_commands(cli)
