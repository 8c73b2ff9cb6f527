"""Shared service-layer helper functions."""

from __future__ import annotations

import time
from datetime import UTC, datetime


def now_iso() -> str:
    """Current UTC time as standard ISO 8601 (for audit trails and the WAL)."""
    return datetime.now(UTC).isoformat()


def now_ms() -> int:
    """Current time in epoch milliseconds (``joined_at`` timestamps)."""
    return int(time.time() * 1000)


def now_us() -> int:
    """Current time in epoch microseconds (conductor timestamps)."""
    return time.time_ns() // 1000


def error_message(exc: BaseException, fallback: str) -> str:
    """Human-readable message for *exc*, or *fallback* when it has none."""
    text = str(exc).strip()
    return text or fallback
