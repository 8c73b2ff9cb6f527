"""Command group: network lifecycle (create, join, list, switch, leave, ...)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from sharectl.commands._base import SharectlGroup

if TYPE_CHECKING:
    from sharectl.commands._context import AppContext
    from sharectl.services.session import NetworkSession


def resolve_network_id(session: NetworkSession, ref: str) -> str:
    """Expand a unique ID prefix to a full network ID.

    Exact matches win; anything ambiguous or unknown is passed through so
    the session reports it.
    """
    ids = [n.id for n in session.state.networks]
    if ref in ids:
        return ref
    matches = [i for i in ids if i.startswith(ref)]
    return matches[0] if len(matches) == 1 else ref


@click.group(
    cls=SharectlGroup,
    examples="""\
  sharectl network create "Book club"
  sharectl network join apple river candle orbit maple --name "Book club"
  sharectl network list
  sharectl network switch hC0kI2v
  sharectl network rename hC0kI2v "Reading group\"""",
)
def network() -> None:
    """Create, join, and manage sharing networks."""


@network.command(
    examples="""\
  sharectl network create "Book club"
  sharectl network create "Book club" --passphrase "apple river candle orbit maple\"""",
)
@click.argument("name")
@click.option("--passphrase", default=None, help="Use this passphrase instead of generating one.")
@click.pass_obj
def create(app: AppContext, name: str, passphrase: str | None) -> None:
    """Create a network and make it active. Prints the passphrase to share."""
    app.emit(app.run(lambda s: s.create_network(name, passphrase)))


@network.command(
    examples="""\
  sharectl network join apple river candle orbit maple
  sharectl network join "apple river candle orbit maple" --name "Book club\"""",
)
@click.argument("words", nargs=-1, required=True)
@click.option("--name", default=None, help="Local display name for the network.")
@click.pass_obj
def join(app: AppContext, words: tuple[str, ...], name: str | None) -> None:
    """Join a network by its five-word passphrase."""
    passphrase = " ".join(words)
    app.emit(app.run(lambda s: s.join_network(passphrase, name)))


@network.command("list")
@click.pass_obj
def list_cmd(app: AppContext) -> None:
    """List joined networks; the active one is marked with '*'."""
    app.emit(app.run(lambda s: s.refresh_networks(), init=False))


@network.command(examples="  sharectl network switch hC0kI2v")
@click.argument("network_id")
@click.pass_obj
def switch(app: AppContext, network_id: str) -> None:
    """Make a network active."""
    app.emit(app.run(lambda s: s.set_active_network(resolve_network_id(s, network_id))))


@network.command(examples="  sharectl network leave hC0kI2v")
@click.argument("network_id")
@click.pass_obj
def leave(app: AppContext, network_id: str) -> None:
    """Leave a network. Its data stays with the other members."""
    app.emit(app.run(lambda s: s.leave_network(resolve_network_id(s, network_id))))


@network.command(examples="  sharectl network enable hC0kI2vQ...full-id")
@click.argument("network_id")
@click.pass_obj
def enable(app: AppContext, network_id: str) -> None:
    """Re-enable a network that was left. Takes the full network ID."""
    app.emit(app.run(lambda s: s.enable_network(network_id)))


@network.command(examples='  sharectl network rename hC0kI2v "Reading group"')
@click.argument("network_id")
@click.argument("name")
@click.pass_obj
def rename(app: AppContext, network_id: str, name: str) -> None:
    """Change a network's local display name."""
    app.emit(app.run(lambda s: s.update_name(resolve_network_id(s, network_id), name)))
