"""Command group: shares in the active network."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from sharectl.commands._base import SharectlGroup

if TYPE_CHECKING:
    from sharectl.commands._context import AppContext
    from sharectl.services.result import ServiceResult
    from sharectl.services.session import NetworkSession


async def _list(session: NetworkSession) -> ServiceResult:
    return session.list_shares()


def resolve_share_id(session: NetworkSession, ref: str) -> str:
    """Expand a unique prefix of a share in the active feed to its full ID."""
    ids = [s.id for s in session.state.view.shares]
    if ref in ids:
        return ref
    matches = [i for i in ids if i.startswith(ref)]
    return matches[0] if len(matches) == 1 else ref


async def _delete(session: NetworkSession, ref: str) -> ServiceResult:
    return await session.delete_share(resolve_share_id(session, ref))


@click.group(
    cls=SharectlGroup,
    examples="""\
  sharectl share list
  sharectl share add https://example.com "An article" --tag reading
  sharectl share update uhCkk3Xr --title "A better title"
  sharectl share week 2026 42
  sharectl -v share list""",
)
def share() -> None:
    """Read and post links in the active network."""


@share.command("list")
@click.pass_obj
def list_cmd(app: AppContext) -> None:
    """Show the active network's feed, newest first."""
    app.emit(app.run(_list))


@share.command(
    examples="""\
  sharectl share add https://example.com "An article"
  sharectl share add https://example.com "An article" -d "Worth a read" -t reading -t news""",
)
@click.argument("url")
@click.argument("title")
@click.option("-d", "--description", default=None, help="Short description.")
@click.option("--selection", default=None, help="Quoted text from the page.")
@click.option("-t", "--tag", "tags", multiple=True, help="Tag (repeatable).")
@click.pass_obj
def add(
    app: AppContext,
    url: str,
    title: str,
    description: str | None,
    selection: str | None,
    tags: tuple[str, ...],
) -> None:
    """Share a link into the active network."""
    app.emit(
        app.run(
            lambda s: s.create_share(
                url,
                title,
                description=description,
                selection=selection,
                tags=list(tags),
            )
        )
    )


@share.command(examples="  sharectl share delete uhCkk3Xr")
@click.argument("share_id")
@click.pass_obj
def delete(app: AppContext, share_id: str) -> None:
    """Delete a share by ID (or unique ID prefix; see 'share list -v')."""
    app.emit(app.run(lambda s: _delete(s, share_id)))


@share.command(
    examples="""\
  sharectl share update uhCkk3Xr --title "A better title"
  sharectl share update uhCkk3Xr -t reading -t longform""",
)
@click.argument("share_id")
@click.option("--url", default=None, help="New URL.")
@click.option("--title", default=None, help="New title.")
@click.option("-d", "--description", default=None, help="New description.")
@click.option("-t", "--tag", "tags", multiple=True, help="Replace tags (repeatable).")
@click.pass_obj
def update(
    app: AppContext,
    share_id: str,
    url: str | None,
    title: str | None,
    description: str | None,
    tags: tuple[str, ...],
) -> None:
    """Edit a share. Options not given keep their current value."""
    app.emit(
        app.run(
            lambda s: s.update_share(
                resolve_share_id(s, share_id),
                url=url,
                title=title,
                description=description,
                tags=list(tags) if tags else None,
            )
        )
    )


@share.command(examples="  sharectl share week 2026 42")
@click.argument("year", type=int)
@click.argument("week", type=click.IntRange(1, 53))
@click.pass_obj
def week(app: AppContext, year: int, week: int) -> None:
    """Show shares posted during an ISO calendar week."""
    app.emit(app.run(lambda s: s.shares_for_week(year, week)))
