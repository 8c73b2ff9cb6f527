"""BaseService — shared plumbing for services built on a Workspace."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sharectl.infrastructure.workspace import Workspace

logger = logging.getLogger(__name__)


class BaseService:
    """Base for service classes that receive a :class:`Workspace`."""

    def __init__(self, workspace: Workspace) -> None:
        self._workspace = workspace

    def _dispatch_event(
        self,
        hook_name: str,
        payload: dict[str, Any],
        warnings: list[str],
        *,
        network_id: str | None = None,
    ) -> None:
        """Dispatch a lifecycle event. No-op if the event bus is not running.

        INVARIANT: Plugin failures are warnings, never errors.
        """
        bus = self._workspace.event_bus
        if bus is None:
            return
        try:
            bus.dispatch(hook_name, payload, network_id=network_id)
        except Exception:
            logger.debug("Event dispatch failed for %s", hook_name, exc_info=True)
            warnings.append(f"Event dispatch failed for {hook_name}")
