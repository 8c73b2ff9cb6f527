"""ServiceResult and ServiceError — the session's public return contract.

INVARIANT: Every public NetworkSession operation returns a ServiceResult.
The CLI and any display layer consume this type; exceptions never cross
the session boundary.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ServiceError(BaseModel):
    """Structured error payload within a ServiceResult."""

    model_config = {"frozen": True}

    code: str
    message: str
    detail: dict[str, Any] = Field(default_factory=dict)


class ServiceResult(BaseModel):
    """Universal return type for session operations.

    Attributes:
        ok: Whether the operation succeeded.
        op: Name of the operation (e.g. ``"network_create"``).
        data: Operation-specific payload on success.
        warnings: Non-fatal issues encountered during the operation.
        error: Structured error if ``ok`` is False.
        meta: Optional metadata (telemetry spans).
    """

    model_config = {"frozen": True}

    ok: bool
    op: str
    data: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    error: ServiceError | None = None
    meta: dict[str, Any] | None = None


def failure(op: str, code: str, message: str, **detail: Any) -> ServiceResult:
    """Shorthand for a failed ServiceResult."""
    return ServiceResult(
        ok=False,
        op=op,
        error=ServiceError(code=code, message=message, detail=detail),
    )
