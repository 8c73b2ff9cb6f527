"""FeedClient — typed wrappers over sharefeed zome calls."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sharectl.infrastructure.conductor.base import ROLE_NAME, ConductorError

if TYPE_CHECKING:
    from sharectl.domain.ids import CellId
    from sharectl.infrastructure.conductor.base import ZomeTransport

logger = logging.getLogger(__name__)


class FeedClient:
    """Issues feed calls against the currently targeted cell.

    The target is set by :meth:`retarget`; it is read synchronously when a
    call is issued, so a call made after ``retarget`` returns can never
    address the previous cell.
    """

    def __init__(self, transport: ZomeTransport, *, role_name: str = ROLE_NAME) -> None:
        self._transport = transport
        self.role_name = role_name
        self._cell_id: CellId | None = None

    @property
    def target(self) -> CellId | None:
        return self._cell_id

    @property
    def has_target(self) -> bool:
        return self._cell_id is not None

    def retarget(self, cell_id: CellId | None) -> None:
        self._cell_id = cell_id

    # ── Share items ──────────────────────────────────────────────────

    async def get_recent_shares(self, *, cell_id: CellId | None = None) -> list[dict[str, Any]]:
        return await self._call("get_recent_shares", None, cell_id)

    async def get_share_item(
        self, action_hash: bytes, *, cell_id: CellId | None = None
    ) -> dict[str, Any] | None:
        return await self._call("get_share_item", action_hash, cell_id)

    async def create_share_item(
        self, entry: dict[str, Any], *, cell_id: CellId | None = None
    ) -> dict[str, Any]:
        return await self._call("create_share_item", entry, cell_id)

    async def update_share_item(
        self,
        original_hash: bytes,
        previous_hash: bytes,
        entry: dict[str, Any],
        *,
        cell_id: CellId | None = None,
    ) -> dict[str, Any]:
        payload = {
            "original_share_item_hash": original_hash,
            "previous_share_item_hash": previous_hash,
            "updated_share_item": entry,
        }
        return await self._call("update_share_item", payload, cell_id)

    async def delete_share_item(self, action_hash: bytes, *, cell_id: CellId | None = None) -> bytes:
        return await self._call("delete_share_item", action_hash, cell_id)

    async def get_shares_for_week(
        self, year: int, week: int, *, cell_id: CellId | None = None
    ) -> list[dict[str, Any]]:
        return await self._call("get_shares_for_week", {"year": year, "week": week}, cell_id)

    # ── Feeds ────────────────────────────────────────────────────────

    async def create_feed(
        self, entry: dict[str, Any], *, cell_id: CellId | None = None
    ) -> dict[str, Any]:
        return await self._call("create_feed", entry, cell_id)

    async def get_my_feeds(self, *, cell_id: CellId | None = None) -> list[dict[str, Any]]:
        return await self._call("get_my_feeds", None, cell_id)

    async def delete_feed(self, feed_hash: bytes, *, cell_id: CellId | None = None) -> bytes:
        return await self._call("delete_feed", feed_hash, cell_id)

    async def add_share_to_feed(
        self, feed_hash: bytes, share_hash: bytes, *, cell_id: CellId | None = None
    ) -> None:
        payload = {"feed_hash": feed_hash, "share_item_hash": share_hash}
        await self._call("add_share_to_feed", payload, cell_id)

    async def get_feed_shares(
        self, feed_hash: bytes, *, cell_id: CellId | None = None
    ) -> list[dict[str, Any]]:
        return await self._call("get_feed_shares", feed_hash, cell_id)

    async def add_member_to_feed(
        self, feed_hash: bytes, member_key: bytes, *, cell_id: CellId | None = None
    ) -> None:
        payload = {"feed_hash": feed_hash, "member_pubkey": member_key}
        await self._call("add_member_to_feed", payload, cell_id)

    async def get_feed_members(self, feed_hash: bytes, *, cell_id: CellId | None = None) -> list[bytes]:
        return await self._call("get_feed_members", feed_hash, cell_id)

    # ── Internal ─────────────────────────────────────────────────────

    async def _call(self, fn_name: str, payload: Any, cell_id: CellId | None) -> Any:
        target = cell_id if cell_id is not None else self._cell_id
        if target is None:
            raise ConductorError("No network selected")
        logger.debug("zome call %s.%s", self.role_name, fn_name)
        return await self._transport.call_zome(target, fn_name, payload)
