"""Contracts consumed from the replication engine ("conductor").

The conductor owns whether a network exists; sharectl only asks it to
materialize, list, deactivate, and activate clone cells, and routes feed
calls to whichever cell is currently targeted. Implementations raise
:class:`ConductorError` for every failure they report.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from sharectl.domain.ids import CellId

ROLE_NAME = "sharefeed"


class ConductorError(Exception):
    """Any failure reported by (or while reaching) the conductor."""


@dataclass(frozen=True)
class MaterializedCell:
    """Identity of a freshly cloned cell."""

    cell_id: CellId
    name: str = ""


@dataclass(frozen=True)
class ReportedCell:
    """A clone cell as listed by the conductor.

    ``network_seed`` is only present when the conductor exposes the DNA
    modifiers the cell was cloned with.
    """

    cell_id: CellId
    name: str = ""
    network_seed: str | None = None
    enabled: bool = True


class RemoteAuthority(Protocol):
    """Partition lifecycle calls."""

    async def materialize(self, role_name: str, network_seed: str) -> MaterializedCell: ...

    async def list_partitions(self) -> list[ReportedCell]: ...

    async def deactivate(self, network_id: str) -> None: ...

    async def activate(self, network_id: str) -> None: ...


class ZomeTransport(Protocol):
    """Raw zome-call channel addressed by cell."""

    async def call_zome(self, cell_id: CellId, fn_name: str, payload: Any) -> Any: ...


class DataClient(Protocol):
    """Feed calls scoped to the last retargeted cell.

    Every call also accepts an explicit ``cell_id`` so a caller can pin a
    request to the cell it was issued for.
    """

    @property
    def target(self) -> CellId | None: ...

    @property
    def has_target(self) -> bool: ...

    def retarget(self, cell_id: CellId | None) -> None: ...

    async def get_recent_shares(self, *, cell_id: CellId | None = None) -> list[dict[str, Any]]: ...

    async def create_share_item(
        self, entry: dict[str, Any], *, cell_id: CellId | None = None
    ) -> dict[str, Any]: ...

    async def delete_share_item(
        self, action_hash: bytes, *, cell_id: CellId | None = None
    ) -> bytes: ...
