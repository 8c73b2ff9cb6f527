"""Network (cell) ID conversion.

A cell is identified by the pair ``(dna_hash, agent_pub_key)``. The
canonical string form joins the base64 encodings with a colon and is the
key used everywhere above the conductor boundary: local records, the
active-network pointer, and the per-network cache.

INVARIANT: IDs are permanent. A network's ID never changes once created.
"""

from __future__ import annotations

import base64
import binascii

CellId = tuple[bytes, bytes]


def encode_hash(raw: bytes) -> str:
    """Standard base64 for a single hash."""
    return base64.b64encode(raw).decode("ascii")


def decode_hash(encoded: str) -> bytes:
    """Inverse of :func:`encode_hash`. Raises ``ValueError`` on bad input."""
    try:
        return base64.b64decode(encoded.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as exc:
        msg = f"Invalid base64 hash: {encoded!r}"
        raise ValueError(msg) from exc


def cell_id_to_string(cell_id: CellId) -> str:
    """``(dna, agent)`` -> ``"<b64 dna>:<b64 agent>"``."""
    dna_hash, agent_key = cell_id
    return f"{encode_hash(dna_hash)}:{encode_hash(agent_key)}"


def cell_id_from_string(value: str) -> CellId:
    """Parse a canonical cell ID string back into its byte pair."""
    dna_part, sep, agent_part = value.partition(":")
    if not sep or not dna_part or not agent_part or ":" in agent_part:
        msg = f"Malformed cell id: {value!r}"
        raise ValueError(msg)
    return decode_hash(dna_part), decode_hash(agent_part)


def is_cell_id(value: str) -> bool:
    """Whether *value* parses as a canonical cell ID."""
    try:
        cell_id_from_string(value)
    except ValueError:
        return False
    return True
