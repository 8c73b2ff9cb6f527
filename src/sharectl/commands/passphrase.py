"""Command group: offline passphrase helpers."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from sharectl.commands._base import SharectlGroup

if TYPE_CHECKING:
    from sharectl.commands._context import AppContext


@click.group(
    cls=SharectlGroup,
    examples="""\
  sharectl passphrase generate
  sharectl -q passphrase generate
  sharectl passphrase validate apple river candle orbit maple""",
)
def passphrase() -> None:
    """Generate and check network passphrases (no conductor needed)."""


@passphrase.command()
@click.pass_obj
def generate(app: AppContext) -> None:
    """Print a fresh random five-word passphrase."""
    from sharectl.services.passphrase import PassphraseService

    app.emit(PassphraseService().generate())


@passphrase.command()
@click.argument("words", nargs=-1)
@click.pass_obj
def validate(app: AppContext, words: tuple[str, ...]) -> None:
    """Check a passphrase and show its canonical form."""
    from sharectl.services.passphrase import PassphraseService

    app.emit(PassphraseService().validate(" ".join(words)))
