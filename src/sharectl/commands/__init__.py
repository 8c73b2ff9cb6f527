"""Subcommand modules for sharectl.

Provides register_commands() which uses deferred imports to keep
``sharectl --help`` fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register the command groups on the root CLI group."""
    from sharectl.commands.feed import feed
    from sharectl.commands.network import network
    from sharectl.commands.passphrase import passphrase
    from sharectl.commands.share import share

    cli.add_command(network)
    cli.add_command(share)
    cli.add_command(feed)
    cli.add_command(passphrase)
