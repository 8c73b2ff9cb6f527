"""PartitionCache — stale-while-revalidate feed cache, one entry per network.

Switching to a network that has been seen before shows its cached shares
at once and refreshes in the background; a first visit shows a loading
view and fetches in the foreground.

Race rule: every fetch captures the network it was launched for. Its
result always refreshes that network's cache entry, but reaches the
visible view only if that network is still the one displayed (see
:meth:`PartitionCache._apply_if_current`). Fetches are never cancelled;
a fetch for a network the user has left simply lands in the cache.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from sharectl.domain.ids import cell_id_from_string
from sharectl.domain.types import ShareItem, ShareView, to_share_item
from sharectl.infrastructure.conductor.base import ConductorError
from sharectl.services._helpers import error_message
from sharectl.services.telemetry import trace_span

if TYPE_CHECKING:
    from collections.abc import Callable

    from sharectl.infrastructure.conductor.base import DataClient

logger = logging.getLogger(__name__)


class PartitionCache:
    """Per-network share cache driving a single displayed view."""

    def __init__(
        self,
        client: DataClient,
        on_change: Callable[[ShareView], None] | None = None,
    ) -> None:
        self._client = client
        self._on_change = on_change
        self._entries: dict[str, list[ShareItem]] = {}
        self._displayed_id: str | None = None
        self._view = ShareView()
        self._tasks: set[asyncio.Task[None]] = set()

    # ── Read access ──────────────────────────────────────────────────

    @property
    def view(self) -> ShareView:
        return self._view

    @property
    def displayed_id(self) -> str | None:
        return self._displayed_id

    def get(self, network_id: str) -> list[ShareItem] | None:
        entry = self._entries.get(network_id)
        return list(entry) if entry is not None else None

    def __contains__(self, network_id: object) -> bool:
        return network_id in self._entries

    # ── Operations ───────────────────────────────────────────────────

    async def switch(self, network_id: str) -> None:
        """Display *network_id*: cached shares now, fresh shares when they arrive."""
        self._displayed_id = network_id
        cached = self._entries.get(network_id)
        if cached is not None:
            self._set_view(
                network_id=network_id,
                shares=list(cached),
                loading=False,
                error=None,
                has_network=True,
            )
            self._spawn_background(network_id)
            return

        self._set_view(
            network_id=network_id,
            shares=[],
            loading=True,
            error=None,
            has_network=True,
        )
        await self._fetch_traced(network_id)

    async def refresh(self) -> None:
        """Re-fetch the displayed network, showing the loading state."""
        network_id = self._displayed_id
        if network_id is None:
            self.clear()
            return
        self._set_view(loading=True, error=None)
        await self._fetch_traced(network_id)

    def store(self, network_id: str, shares: list[ShareItem]) -> None:
        """Overwrite the entry for *network_id* and show it if displayed."""
        self._entries[network_id] = list(shares)
        self._apply_if_current(network_id, shares)

    def clear(self) -> None:
        """Show nothing. Cache entries are kept."""
        self._displayed_id = None
        self._set_view(network_id=None, shares=[], loading=False, error=None, has_network=False)

    def reset(self) -> None:
        """Drop every cache entry and clear the view."""
        self._entries.clear()
        self.clear()

    async def wait_idle(self) -> None:
        """Wait for outstanding background refreshes to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ── Internal ─────────────────────────────────────────────────────

    def _spawn_background(self, network_id: str) -> None:
        task = asyncio.get_running_loop().create_task(
            self._refresh_in_background(network_id),
            name=f"sharectl-refresh-{network_id[:12]}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _refresh_in_background(self, network_id: str) -> None:
        try:
            await self._fetch(network_id, background=True)
        except Exception:
            logger.warning("Background refresh crashed for %s", network_id, exc_info=True)

    async def _fetch_traced(self, network_id: str) -> None:
        with trace_span("fetch_shares", network=network_id) as span:
            await self._fetch(network_id)
            if span is not None:
                span.annotate("shares", len(self._entries.get(network_id, [])))
                if self._view.error is not None:
                    span.annotate("error", self._view.error)

    async def _fetch(self, network_id: str, *, background: bool = False) -> None:
        # The cell is pinned now; the client may be retargeted while we wait.
        cell_id = cell_id_from_string(network_id)
        try:
            infos = await self._client.get_recent_shares(cell_id=cell_id)
            shares = [to_share_item(info) for info in infos]
        except (ConductorError, LookupError, TypeError, ValueError) as exc:
            if background:
                # The cached view stays up; a transient failure is not shown.
                logger.warning("Background refresh failed for %s: %s", network_id, exc)
                return
            logger.warning("Failed to fetch shares for %s: %s", network_id, exc)
            if self._displayed_id == network_id:
                self._set_view(loading=False, error=error_message(exc, "Failed to load shares"))
            return

        self.store(network_id, shares)

    def _apply_if_current(self, network_id: str, shares: list[ShareItem]) -> bool:
        """Show *shares* only if *network_id* is still the displayed network."""
        if self._displayed_id != network_id:
            logger.debug("Discarding shares for %s: no longer displayed", network_id)
            return False
        self._set_view(
            network_id=network_id,
            shares=list(shares),
            loading=False,
            error=None,
            has_network=True,
        )
        return True

    def _set_view(self, **changes: object) -> None:
        self._view = self._view.model_copy(update=changes)
        if self._on_change is not None:
            self._on_change(self._view)
