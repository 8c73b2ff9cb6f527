"""ActiveSelector — which network is current.

Two states: no active network, or ``Active(id)``. Selecting retargets the
feed client *before* anything else, so once :meth:`ActiveSelector.select`
has started no feed call can address the previous network. The selection
is persisted as the durable "last active" pointer and restored on the
next start.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sharectl.config.logging import bind_network
from sharectl.domain.ids import cell_id_from_string

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from sharectl.infrastructure.conductor.base import DataClient
    from sharectl.infrastructure.store import NetworkStore
    from sharectl.services.cache import PartitionCache

logger = logging.getLogger(__name__)


class ActiveSelector:
    """Holds the active network ID and keeps client, store, and cache in step."""

    def __init__(
        self,
        store: NetworkStore,
        client: DataClient,
        cache: PartitionCache,
        on_change: Callable[[str | None], None] | None = None,
    ) -> None:
        self._store = store
        self._client = client
        self._cache = cache
        self._on_change = on_change
        self._active_id: str | None = None

    @property
    def active_id(self) -> str | None:
        return self._active_id

    @property
    def has_active(self) -> bool:
        return self._active_id is not None

    async def select(self, network_id: str) -> None:
        """Make *network_id* active and switch the cache to it."""
        self._client.retarget(cell_id_from_string(network_id))
        self._store.set_active_id(network_id)
        self._set_active(network_id)
        logger.debug("Active network: %s", network_id)
        await self._cache.switch(network_id)

    def deselect(self) -> None:
        """Enter the no-active state and clear the durable pointer."""
        self._client.retarget(None)
        self._store.clear_active_id()
        self._set_active(None)
        self._cache.clear()

    async def on_removed(self, network_id: str, remaining: Sequence[str]) -> str | None:
        """React to *network_id* leaving the known set. Returns the active ID after."""
        if self._active_id != network_id:
            return self._active_id
        if remaining:
            await self.select(remaining[0])
        else:
            self.deselect()
        return self._active_id

    async def restore(self, known: Sequence[str]) -> str | None:
        """Re-select the persisted network, else the first known one, else none."""
        stored = self._store.get_active_id()
        if stored is not None and stored in known:
            target: str | None = stored
        else:
            if stored is not None:
                logger.debug("Stored active network %s is gone", stored)
            target = known[0] if known else None

        if target is None:
            self.deselect()
        else:
            await self.select(target)
        return self._active_id

    def forget(self) -> None:
        """Drop in-memory selection only (logout); the durable pointer stays."""
        self._client.retarget(None)
        self._set_active(None)

    def _set_active(self, network_id: str | None) -> None:
        self._active_id = network_id
        bind_network(network_id)
        if self._on_change is not None:
            self._on_change(network_id)
