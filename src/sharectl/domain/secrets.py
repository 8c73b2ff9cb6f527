"""Passphrase generation, validation, and seed conversion.

A network is addressed by a five-word passphrase. The passphrase becomes
the network seed that the conductor uses to clone the sharefeed DNA, so
everyone who types the same words lands in the same network.

INVARIANT: ``seed_to_passphrase(passphrase_to_seed(p)) == p`` for every
canonical passphrase (trimmed, single-space separated) that validates.
"""

from __future__ import annotations

import random
import re
import secrets
from dataclasses import dataclass

SEED_PREFIX = "sharefeed-"
WORD_COUNT = 5

REASON_WRONG_WORD_COUNT = "wrong word count"
REASON_EMPTY_WORD = "empty word"

_SEPARATOR = re.compile(r"\s")

# Escapes keep '-' inside a word from being read back as a separator.
_ESCAPES = (("%", "%25"), ("-", "%2D"))

WORDLIST: tuple[str, ...] = (
    "acid", "acorn", "acre", "actor", "adobe", "agent", "alarm", "album",
    "alley", "alpha", "amber", "anchor", "angle", "ankle", "apple", "apron",
    "arena", "armor", "arrow", "aspen", "atlas", "attic", "audio", "badge",
    "bagel", "baker", "bamboo", "banjo", "barn", "basil", "basin", "beach",
    "beacon", "berry", "bison", "blade", "blaze", "bloom", "board", "bonus",
    "brick", "bridge", "brook", "brush", "cabin", "cable", "cactus", "camel",
    "candle", "canoe", "canyon", "cargo", "carpet", "cedar", "chalk", "charm",
    "cherry", "chess", "cider", "cinema", "circus", "clay", "cliff", "clock",
    "cloud", "clover", "cobalt", "cocoa", "comet", "coral", "cotton", "cradle",
    "crane", "crater", "crown", "cube", "curry", "daisy", "delta", "denim",
    "desert", "diary", "dingo", "dolphin", "domino", "dragon", "drum", "dune",
    "eagle", "easel", "echo", "elbow", "elder", "ember", "emerald", "engine",
    "fable", "falcon", "fern", "ferry", "fiddle", "field", "flame", "flint",
    "flute", "forest", "fossil", "fox", "galaxy", "garden", "garlic", "gecko",
    "geyser", "ginger", "glacier", "globe", "goose", "granite", "grape", "gravel",
    "hammock", "harbor", "harp", "hazel", "helmet", "heron", "hickory", "honey",
    "horizon", "igloo", "indigo", "iris", "island", "ivory", "jacket", "jade",
    "jasmine", "jelly", "jersey", "jungle", "kayak", "kettle", "kiwi", "koala",
    "ladder", "lagoon", "lantern", "lava", "lemon", "lilac", "linen", "lizard",
    "lobster", "locket", "lotus", "lunar", "magnet", "mango", "maple", "marble",
    "meadow", "melon", "mesa", "meteor", "mint", "mirror", "mocha", "molar",
    "mosaic", "moss", "motor", "nectar", "nickel", "noodle", "nutmeg", "oasis",
    "ocean", "olive", "onyx", "opal", "orbit", "orchid", "otter", "oyster",
    "paddle", "panda", "papaya", "parrot", "pebble", "pepper", "piano", "pillow",
    "pine", "pixel", "planet", "plum", "pond", "poppy", "prairie", "prism",
    "pumpkin", "quartz", "quill", "quiver", "rabbit", "radar", "raven", "reef",
    "ribbon", "ripple", "river", "robin", "rocket", "saddle", "saffron", "salmon",
    "sandal", "satin", "scarf", "shell", "sierra", "silver", "sketch", "sparrow",
    "spruce", "stone", "summit", "sunset", "tango", "teapot", "thistle", "thunder",
    "tiger", "timber", "topaz", "torch", "tulip", "tundra", "umbrella", "valley",
    "velvet", "violet", "walnut", "willow", "window", "yarrow", "zephyr", "zinnia",
)


@dataclass(frozen=True)
class PassphraseCheck:
    """Outcome of :func:`validate_passphrase`.

    ``reason`` is a stable machine code (``"wrong word count"`` or
    ``"empty word"``); ``message`` is meant for people.
    """

    valid: bool
    reason: str | None = None
    message: str | None = None


def split_words(passphrase: str) -> list[str]:
    """Trim and split on single whitespace characters.

    Runs of whitespace yield zero-length words, which validation rejects.
    """
    return _SEPARATOR.split(passphrase.strip())


def validate_passphrase(passphrase: str) -> PassphraseCheck:
    """Check that *passphrase* is exactly five non-empty words."""
    trimmed = passphrase.strip()
    if not trimmed:
        return PassphraseCheck(False, REASON_EMPTY_WORD, "Passphrase is required")

    words = split_words(trimmed)
    # A whitespace run splits into an empty word; count only the real ones.
    if not all(words):
        return PassphraseCheck(
            False,
            REASON_EMPTY_WORD,
            "Each word must have at least one character",
        )
    if len(words) != WORD_COUNT:
        return PassphraseCheck(
            False,
            REASON_WRONG_WORD_COUNT,
            f"Passphrase must be exactly {WORD_COUNT} words (got {len(words)})",
        )
    return PassphraseCheck(True)


def is_valid_passphrase(passphrase: str) -> bool:
    """Quick boolean form of :func:`validate_passphrase`."""
    return validate_passphrase(passphrase).valid


def normalize_passphrase(passphrase: str) -> str:
    """Canonical form: trimmed words joined by single spaces."""
    return " ".join(word for word in split_words(passphrase) if word)


def _escape(word: str) -> str:
    for raw, escaped in _ESCAPES:
        word = word.replace(raw, escaped)
    return word


def _unescape(word: str) -> str:
    for raw, escaped in reversed(_ESCAPES):
        word = word.replace(escaped, raw)
    return word


def passphrase_to_seed(passphrase: str) -> str:
    """Convert a passphrase to the network seed used for DNA cloning.

    Examples:
        >>> passphrase_to_seed("amber river kiwi torch velvet")
        'sharefeed-amber-river-kiwi-torch-velvet'
    """
    return SEED_PREFIX + "-".join(_escape(word) for word in split_words(passphrase))


def seed_to_passphrase(seed: str) -> str:
    """Recover the passphrase from a seed made by :func:`passphrase_to_seed`.

    Seeds from elsewhere are decoded best-effort: a missing prefix is
    tolerated and the result may not be a valid passphrase.

    Examples:
        >>> seed_to_passphrase("sharefeed-amber-river-kiwi-torch-velvet")
        'amber river kiwi torch velvet'
    """
    body = seed.removeprefix(SEED_PREFIX)
    return " ".join(_unescape(word) for word in body.split("-"))


def generate_passphrase(rng: random.Random | None = None) -> str:
    """Draw :data:`WORD_COUNT` words from :data:`WORDLIST`, with replacement."""
    chooser = rng or secrets.SystemRandom()
    return " ".join(chooser.choice(WORDLIST) for _ in range(WORD_COUNT))
