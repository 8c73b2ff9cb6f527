"""Command group: curated feeds inside the active network."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from sharectl.commands._base import SharectlGroup
from sharectl.commands.share import resolve_share_id

if TYPE_CHECKING:
    from sharectl.commands._context import AppContext
    from sharectl.services.result import ServiceResult
    from sharectl.services.session import NetworkSession


async def resolve_feed_id(session: NetworkSession, ref: str) -> str:
    """Expand a unique prefix of one of my feeds to its full ID."""
    listed = await session.list_feeds()
    if not listed.ok:
        return ref
    ids = [item["id"] for item in listed.data["items"]]
    if ref in ids:
        return ref
    matches = [i for i in ids if i.startswith(ref)]
    return matches[0] if len(matches) == 1 else ref


async def _list(session: NetworkSession) -> ServiceResult:
    return await session.list_feeds()


async def _delete(session: NetworkSession, ref: str) -> ServiceResult:
    return await session.delete_feed(await resolve_feed_id(session, ref))


async def _add(session: NetworkSession, feed_ref: str, share_ref: str) -> ServiceResult:
    feed_id = await resolve_feed_id(session, feed_ref)
    return await session.add_share_to_feed(feed_id, resolve_share_id(session, share_ref))


async def _shares(session: NetworkSession, ref: str) -> ServiceResult:
    return await session.feed_shares(await resolve_feed_id(session, ref))


async def _invite(session: NetworkSession, ref: str, member: str) -> ServiceResult:
    return await session.add_feed_member(await resolve_feed_id(session, ref), member)


async def _members(session: NetworkSession, ref: str) -> ServiceResult:
    return await session.feed_members(await resolve_feed_id(session, ref))


@click.group(
    cls=SharectlGroup,
    examples="""\
  sharectl feed create "Weekend reading" -d "Long articles"
  sharectl feed list
  sharectl feed add uhCkkF33 uhCkk3Xr
  sharectl feed shares uhCkkF33""",
)
def feed() -> None:
    """Curate shares of the active network into named feeds."""


@feed.command("list")
@click.pass_obj
def list_cmd(app: AppContext) -> None:
    """Show the feeds you created in the active network."""
    app.emit(app.run(_list))


@feed.command(
    examples="""\
  sharectl feed create "Weekend reading"
  sharectl feed create "Club picks" -d "Voted each month" --public""",
)
@click.argument("name")
@click.option("-d", "--description", default=None, help="Short description.")
@click.option("--public", "is_public", is_flag=True, help="Mark the feed as public.")
@click.option("--steward", "stewards", multiple=True, help="Steward agent key (repeatable; default: you).")
@click.pass_obj
def create(
    app: AppContext,
    name: str,
    description: str | None,
    is_public: bool,
    stewards: tuple[str, ...],
) -> None:
    """Create a feed in the active network."""
    app.emit(
        app.run(
            lambda s: s.create_feed(
                name,
                description=description,
                is_public=is_public,
                stewards=list(stewards) or None,
            )
        )
    )


@feed.command(examples="  sharectl feed delete uhCkkF33")
@click.argument("feed_id")
@click.pass_obj
def delete(app: AppContext, feed_id: str) -> None:
    """Delete a feed (its shares stay in the network)."""
    app.emit(app.run(lambda s: _delete(s, feed_id)))


@feed.command(examples="  sharectl feed add uhCkkF33 uhCkk3Xr")
@click.argument("feed_id")
@click.argument("share_id")
@click.pass_obj
def add(app: AppContext, feed_id: str, share_id: str) -> None:
    """Add a share from the active network to a feed."""
    app.emit(app.run(lambda s: _add(s, feed_id, share_id)))


@feed.command(examples="  sharectl feed shares uhCkkF33")
@click.argument("feed_id")
@click.pass_obj
def shares(app: AppContext, feed_id: str) -> None:
    """Show a feed's shares, most recently added first."""
    app.emit(app.run(lambda s: _shares(s, feed_id)))


@feed.command(examples="  sharectl feed invite uhCkkF33 uhCAkQ1b...agent-key")
@click.argument("feed_id")
@click.argument("member")
@click.pass_obj
def invite(app: AppContext, feed_id: str, member: str) -> None:
    """Add an agent (by public key) to a feed's members."""
    app.emit(app.run(lambda s: _invite(s, feed_id, member)))


@feed.command(examples="  sharectl feed members uhCkkF33")
@click.argument("feed_id")
@click.pass_obj
def members(app: AppContext, feed_id: str) -> None:
    """List a feed's members (stewards included)."""
    app.emit(app.run(lambda s: _members(s, feed_id)))
