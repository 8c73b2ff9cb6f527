"""PartitionRegistry — network lifecycle against the conductor.

The conductor decides which networks exist; the local store only carries
display metadata (name, passphrase, join time). :meth:`PartitionRegistry.list`
reconciles the two with an explicit left join on network ID.

INVARIANT: A failed conductor call leaves the local store untouched.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sharectl.domain.ids import cell_id_to_string
from sharectl.domain.secrets import (
    generate_passphrase,
    normalize_passphrase,
    passphrase_to_seed,
    seed_to_passphrase,
    validate_passphrase,
)
from sharectl.domain.types import Network, NetworkRecord
from sharectl.infrastructure.conductor.base import ROLE_NAME, ConductorError
from sharectl.services._helpers import error_message, now_ms
from sharectl.services.errors import AuthorityError, ValidationError

if TYPE_CHECKING:
    from collections.abc import Callable

    from sharectl.infrastructure.conductor.base import RemoteAuthority
    from sharectl.infrastructure.store import NetworkStore

logger = logging.getLogger(__name__)

DEFAULT_JOIN_NAME = "Shared Feed"
FALLBACK_NAME = "Unnamed Network"
# joined_at for networks this installation never created or joined itself.
UNKNOWN_JOINED_AT = 0


class PartitionRegistry:
    """Create, join, list, enable, disable, and rename networks."""

    def __init__(
        self,
        authority: RemoteAuthority,
        store: NetworkStore,
        *,
        role_name: str = ROLE_NAME,
        default_join_name: str = DEFAULT_JOIN_NAME,
        fallback_name: str = FALLBACK_NAME,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._authority = authority
        self._store = store
        self._role_name = role_name
        self._default_join_name = default_join_name
        self._fallback_name = fallback_name
        self._clock = clock

    async def create(self, name: str, passphrase: str | None = None) -> Network:
        """Create a network, generating a passphrase when none is given.

        Not deduplicated: whether the same passphrase may be materialized
        twice is up to the conductor.
        """
        return await self._materialize(name, passphrase or generate_passphrase())

    async def join(self, passphrase: str, name: str | None = None) -> Network:
        """Join the network addressed by *passphrase*."""
        return await self._materialize(name or self._default_join_name, passphrase)

    async def list(self) -> list[Network]:
        """Networks reported by the conductor, merged with local metadata.

        Order is the conductor's. Local records with no reported
        counterpart are pruned from the store.
        """
        try:
            cells = await self._authority.list_partitions()
        except ConductorError as exc:
            raise AuthorityError(error_message(exc, "Failed to load networks")) from exc

        local = {record.id: record for record in self._store.load()}
        networks: list[Network] = []
        for cell in cells:
            network_id = cell_id_to_string(cell.cell_id)
            record = local.get(network_id)

            passphrase = record.passphrase if record else ""
            if not passphrase and cell.network_seed:
                passphrase = seed_to_passphrase(cell.network_seed)

            networks.append(
                Network(
                    id=network_id,
                    name=(record.name if record else "") or cell.name or self._fallback_name,
                    passphrase=passphrase,
                    joined_at=record.joined_at if record else UNKNOWN_JOINED_AT,
                )
            )

        dropped = self._store.retain({n.id for n in networks})
        if dropped:
            logger.debug("Discarded %d stale local network record(s)", len(dropped))
        return networks

    async def disable(self, network_id: str) -> None:
        """Deactivate a network (its data persists remotely) and forget it locally."""
        try:
            await self._authority.deactivate(network_id)
        except ConductorError as exc:
            raise AuthorityError(error_message(exc, "Failed to leave network")) from exc
        self._store.remove(network_id)

    async def enable(self, network_id: str) -> None:
        """Reactivate a disabled network. Local metadata is not recreated."""
        try:
            await self._authority.activate(network_id)
        except ConductorError as exc:
            raise AuthorityError(error_message(exc, "Failed to enable network")) from exc

    def rename(self, network_id: str, name: str) -> bool:
        """Rename locally. Never contacts the conductor.

        Returns False when there is no local record to rename.
        """
        return self._store.update_name(network_id, name)

    def remember(self, network: Network) -> None:
        """Persist (or overwrite) the local record for *network*."""
        self._store.save(NetworkRecord.from_network(network))

    async def _materialize(self, name: str, passphrase: str) -> Network:
        check = validate_passphrase(passphrase)
        if not check.valid:
            raise ValidationError(check.reason or "invalid", check.message)

        canonical = normalize_passphrase(passphrase)
        seed = passphrase_to_seed(canonical)
        try:
            cell = await self._authority.materialize(self._role_name, seed)
        except ConductorError as exc:
            raise AuthorityError(error_message(exc, "Failed to create network")) from exc

        network = Network(
            id=cell_id_to_string(cell.cell_id),
            name=name,
            passphrase=canonical,
            joined_at=self._clock(),
        )
        self.remember(network)
        logger.debug("Materialized network %s", network.id)
        return network
