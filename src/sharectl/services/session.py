"""NetworkSession — the coordinator that owns all session state.

Wires the registry, selector, and cache together and is the only place
that mutates :class:`SessionState`. The display layer reads ``state`` and
subscribes for change notifications; it never writes.

Without a conductor connection every operation is a no-op that returns a
``NOT_CONNECTED`` failure, so callers may invoke them before a session
exists.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sharectl.domain.ids import cell_id_from_string, decode_hash, encode_hash
from sharectl.domain.types import (
    Network,
    SessionState,
    ShareView,
    to_feed,
    to_feed_payload,
    to_share_item,
    to_share_payload,
)
from sharectl.infrastructure.conductor.base import ConductorError
from sharectl.services._helpers import error_message
from sharectl.services.base import BaseService
from sharectl.services.cache import PartitionCache
from sharectl.services.errors import AuthorityError, NotConnectedError, ValidationError
from sharectl.services.registry import PartitionRegistry
from sharectl.services.result import ServiceResult, failure
from sharectl.services.selector import ActiveSelector
from sharectl.services.telemetry import trace_span, traced

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from sharectl.infrastructure.conductor.client import FeedClient
    from sharectl.infrastructure.connection import Connection
    from sharectl.infrastructure.workspace import Workspace

logger = logging.getLogger(__name__)


def _network_data(network: Network) -> dict[str, Any]:
    return network.model_dump(mode="json")


def _decode_ref(op: str, value: str) -> bytes | ServiceResult:
    try:
        return decode_hash(value)
    except ValueError as exc:
        return failure(op, "INVALID_ID", str(exc))


class NetworkSession(BaseService):
    """One user's view of their networks and the active network's feed."""

    def __init__(self, workspace: Workspace) -> None:
        super().__init__(workspace)
        self._state = SessionState()
        self._listeners: list[Callable[[SessionState], None]] = []
        self._connection: Connection | None = None
        self._registry: PartitionRegistry | None = None
        self._cache: PartitionCache | None = None
        self._selector: ActiveSelector | None = None
        if workspace.connection is not None:
            self._wire(workspace.connection)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._connection is not None

    @property
    def cache(self) -> PartitionCache | None:
        return self._cache

    def subscribe(self, listener: Callable[[SessionState], None]) -> Callable[[], None]:
        """Call *listener* with the current state now and after every change.

        Returns a function that removes the subscription.
        """
        self._listeners.append(listener)
        self._notify_one(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def wait_idle(self) -> None:
        """Wait for background refreshes started by switches."""
        if self._cache is not None:
            await self._cache.wait_idle()

    # ------------------------------------------------------------------
    # Networks
    # ------------------------------------------------------------------

    @traced
    async def init(self) -> ServiceResult:
        """Load networks from the conductor and restore the last selection."""
        op = "session_init"
        if self._registry is None or self._selector is None:
            return self._not_connected(op, surface=True)

        self._update(loading=True, error=None)
        try:
            with trace_span("list_networks"):
                networks = await self._registry.list()
        except AuthorityError as exc:
            return self._authority_failed(op, exc)

        self._update(networks=networks, loading=False)
        with trace_span("restore_active"):
            active_id = await self._selector.restore([n.id for n in networks])

        return ServiceResult(
            ok=True,
            op=op,
            data={
                "networks": [_network_data(n) for n in self._state.networks],
                "active_id": active_id,
            },
        )

    async def refresh_networks(self) -> ServiceResult:
        """Reload the network list (same as :meth:`init`)."""
        return await self.init()

    @traced
    async def create_network(self, name: str, passphrase: str | None = None) -> ServiceResult:
        """Create a network and make it active."""
        return await self._add_network(
            "network_create",
            "post_network_create",
            lambda registry: registry.create(name, passphrase),
        )

    @traced
    async def join_network(self, passphrase: str, name: str | None = None) -> ServiceResult:
        """Join a network by passphrase and make it active."""
        return await self._add_network(
            "network_join",
            "post_network_join",
            lambda registry: registry.join(passphrase, name),
        )

    @traced
    async def set_active_network(self, network_id: str) -> ServiceResult:
        """Switch to *network_id*; cached shares show immediately."""
        op = "network_switch"
        if self._selector is None or self._cache is None:
            return self._not_connected(op)
        if self._state.find(network_id) is None:
            return failure(op, "NOT_FOUND", f"No such network: {network_id}")

        cached = network_id in self._cache
        warnings: list[str] = []
        await self._activate(network_id, warnings)
        return ServiceResult(
            ok=True,
            op=op,
            data={"active_id": network_id, "cached": cached, "count": len(self._state.view.shares)},
            warnings=warnings,
        )

    @traced
    async def leave_network(self, network_id: str) -> ServiceResult:
        """Disable a network and, if it was active, fall back to the first remaining."""
        op = "network_leave"
        if self._registry is None or self._selector is None:
            return self._not_connected(op)
        if self._state.find(network_id) is None:
            return failure(op, "NOT_FOUND", f"No such network: {network_id}")

        try:
            with trace_span("disable"):
                await self._registry.disable(network_id)
        except AuthorityError as exc:
            return self._authority_failed(op, exc)

        remaining = [n for n in self._state.networks if n.id != network_id]
        self._update(networks=remaining)
        previous = self._state.active_id
        active_id = await self._selector.on_removed(network_id, [n.id for n in remaining])

        warnings: list[str] = []
        self._dispatch_event(
            "post_network_leave",
            {"network_id": network_id, "active_id": active_id},
            warnings,
            network_id=network_id,
        )
        if active_id is not None and active_id != previous:
            self._dispatch_switch(previous, active_id, warnings)
        return ServiceResult(
            ok=True,
            op=op,
            data={"network_id": network_id, "active_id": active_id},
            warnings=warnings,
        )

    @traced
    async def enable_network(self, network_id: str) -> ServiceResult:
        """Re-enable a disabled network and reload the list."""
        op = "network_enable"
        if self._registry is None or self._selector is None:
            return self._not_connected(op)

        try:
            with trace_span("enable"):
                await self._registry.enable(network_id)
            networks = await self._registry.list()
        except AuthorityError as exc:
            return self._authority_failed(op, exc)

        self._update(networks=networks, error=None)
        warnings: list[str] = []
        if self._selector.active_id is None and networks:
            await self._activate(networks[0].id, warnings)

        self._dispatch_event(
            "post_network_enable", {"network_id": network_id}, warnings, network_id=network_id
        )
        return ServiceResult(
            ok=True,
            op=op,
            data={"network_id": network_id, "active_id": self._state.active_id},
            warnings=warnings,
        )

    @traced
    async def update_name(self, network_id: str, name: str) -> ServiceResult:
        """Rename a network locally. The conductor is never contacted."""
        op = "network_rename"
        if self._registry is None:
            return self._not_connected(op)
        name = name.strip()
        if not name:
            return failure(op, "INVALID_NAME", "Network name must not be empty")
        network = self._state.find(network_id)
        if network is None:
            return failure(op, "NOT_FOUND", f"No such network: {network_id}")

        renamed = network.model_copy(update={"name": name})
        if not self._registry.rename(network_id, name):
            self._registry.remember(renamed)
        self._update(networks=[renamed if n.id == network_id else n for n in self._state.networks])

        warnings: list[str] = []
        self._dispatch_event(
            "post_network_rename",
            {"network_id": network_id, "name": name},
            warnings,
            network_id=network_id,
        )
        return ServiceResult(
            ok=True, op=op, data={"network_id": network_id, "name": name}, warnings=warnings
        )

    # ------------------------------------------------------------------
    # Shares in the active network
    # ------------------------------------------------------------------

    def list_shares(self) -> ServiceResult:
        """The currently displayed shares, without fetching."""
        op = "share_list"
        if self._cache is None:
            return self._not_connected(op)
        view = self._state.view
        if not view.has_network:
            return failure(op, "NO_ACTIVE_NETWORK", "No network selected")
        if view.error:
            return failure(op, "FETCH_FAILED", view.error, network_id=view.network_id)
        return ServiceResult(ok=True, op=op, data=self._view_data(view))

    @traced
    async def refresh_shares(self) -> ServiceResult:
        """Re-fetch the active network's shares."""
        op = "share_refresh"
        if self._cache is None or self._selector is None:
            return self._not_connected(op)
        if self._selector.active_id is None:
            self._cache.clear()
            return failure(op, "NO_ACTIVE_NETWORK", "No network selected")

        await self._cache.refresh()
        view = self._state.view
        if view.error:
            return failure(op, "FETCH_FAILED", view.error)
        return ServiceResult(ok=True, op=op, data=self._view_data(view))

    @traced
    async def create_share(
        self,
        url: str,
        title: str,
        *,
        description: str | None = None,
        selection: str | None = None,
        favicon: str | None = None,
        thumbnail: str | None = None,
        tags: list[str] | None = None,
    ) -> ServiceResult:
        """Share a link into the active network and refresh its feed."""
        op = "share_create"
        if self._connection is None or self._cache is None or self._selector is None:
            return self._not_connected(op)
        network_id = self._selector.active_id
        if network_id is None:
            return failure(op, "NO_ACTIVE_NETWORK", "No network selected")

        payload = to_share_payload(
            url,
            title,
            description=description,
            selection=selection,
            favicon=favicon,
            thumbnail=thumbnail,
            tags=tags,
        )
        try:
            info = await self._connection.client.create_share_item(
                payload, cell_id=cell_id_from_string(network_id)
            )
        except ConductorError as exc:
            return self._conductor_failed(op, exc, "Failed to create share")

        created = to_share_item(info)
        await self._cache.refresh()
        return ServiceResult(
            ok=True,
            op=op,
            data={"network_id": network_id, "item": created.model_dump(mode="json")},
        )

    @traced
    async def delete_share(self, share_id: str) -> ServiceResult:
        """Delete a share from the active network."""
        op = "share_delete"
        if self._connection is None or self._cache is None or self._selector is None:
            return self._not_connected(op)
        network_id = self._selector.active_id
        if network_id is None:
            return failure(op, "NO_ACTIVE_NETWORK", "No network selected")

        current = self._state.view.shares
        share = next((s for s in current if s.id == share_id), None)
        if share is None:
            return failure(op, "NOT_FOUND", f"No such share: {share_id}")

        try:
            await self._connection.client.delete_share_item(
                share.action_hash, cell_id=cell_id_from_string(network_id)
            )
        except ConductorError as exc:
            return self._conductor_failed(op, exc, "Failed to delete share")

        self._cache.store(network_id, [s for s in current if s.id != share_id])
        return ServiceResult(ok=True, op=op, data={"network_id": network_id, "id": share_id})

    @traced
    async def update_share(
        self,
        share_id: str,
        *,
        url: str | None = None,
        title: str | None = None,
        description: str | None = None,
        tags: list[str] | None = None,
    ) -> ServiceResult:
        """Edit a share in the active network. Fields left as None keep their value."""
        op = "share_update"
        target = self._target(op)
        if isinstance(target, ServiceResult):
            return target
        client, network_id = target

        share = next((s for s in self._state.view.shares if s.id == share_id), None)
        if share is None:
            return failure(op, "NOT_FOUND", f"No such share: {share_id}")

        payload = to_share_payload(
            url if url is not None else share.url,
            title if title is not None else share.title,
            description=description if description is not None else share.description,
            selection=share.selection,
            favicon=share.favicon,
            thumbnail=share.thumbnail,
            tags=tags if tags is not None else share.tags,
        )
        try:
            await client.update_share_item(
                share.action_hash, share.action_hash, payload, cell_id=cell_id_from_string(network_id)
            )
        except ConductorError as exc:
            return self._conductor_failed(op, exc, "Failed to update share")

        assert self._cache is not None
        await self._cache.refresh()
        updated = next((s for s in self._state.view.shares if s.id == share_id), share)
        return ServiceResult(
            ok=True,
            op=op,
            data={"network_id": network_id, "item": updated.model_dump(mode="json")},
        )

    @traced
    async def shares_for_week(self, year: int, week: int) -> ServiceResult:
        """Shares posted to the active network during ISO *week* of *year*."""
        op = "share_week"
        target = self._target(op)
        if isinstance(target, ServiceResult):
            return target
        client, network_id = target
        if not 1 <= week <= 53:
            return failure(op, "INVALID_WEEK", f"Week must be between 1 and 53 (got {week})")

        try:
            infos = await client.get_shares_for_week(year, week, cell_id=cell_id_from_string(network_id))
            shares = [to_share_item(info) for info in infos]
        except (ConductorError, LookupError, TypeError, ValueError) as exc:
            return self._conductor_failed(op, exc, "Failed to load shares")
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "network_id": network_id,
                "year": year,
                "week": week,
                "items": [s.model_dump(mode="json") for s in shares],
                "count": len(shares),
            },
        )

    # ------------------------------------------------------------------
    # Feeds in the active network
    # ------------------------------------------------------------------

    @traced
    async def list_feeds(self) -> ServiceResult:
        """Feeds this agent created in the active network, oldest first."""
        op = "feed_list"
        target = self._target(op)
        if isinstance(target, ServiceResult):
            return target
        client, network_id = target

        try:
            infos = await client.get_my_feeds(cell_id=cell_id_from_string(network_id))
            feeds = [to_feed(info) for info in infos]
        except (ConductorError, LookupError, TypeError, ValueError) as exc:
            return self._conductor_failed(op, exc, "Failed to load feeds")
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "network_id": network_id,
                "items": [f.model_dump(mode="json") for f in feeds],
                "count": len(feeds),
            },
        )

    @traced
    async def create_feed(
        self,
        name: str,
        *,
        description: str | None = None,
        is_public: bool = False,
        stewards: list[str] | None = None,
    ) -> ServiceResult:
        """Create a feed in the active network.

        Without explicit *stewards* the creating agent stewards the feed.
        """
        op = "feed_create"
        target = self._target(op)
        if isinstance(target, ServiceResult):
            return target
        client, network_id = target
        name = name.strip()
        if not name:
            return failure(op, "INVALID_NAME", "Feed name must not be empty")

        cell_id = cell_id_from_string(network_id)
        try:
            keys = [decode_hash(s) for s in stewards] if stewards else [cell_id[1]]
        except ValueError as exc:
            return failure(op, "INVALID_ID", str(exc))

        payload = to_feed_payload(name, keys, description=description, is_public=is_public)
        try:
            feed = to_feed(await client.create_feed(payload, cell_id=cell_id))
        except (ConductorError, LookupError, TypeError, ValueError) as exc:
            return self._conductor_failed(op, exc, "Failed to create feed")
        return ServiceResult(
            ok=True,
            op=op,
            data={"network_id": network_id, "item": feed.model_dump(mode="json")},
        )

    @traced
    async def delete_feed(self, feed_id: str) -> ServiceResult:
        op = "feed_delete"
        target = self._target(op)
        if isinstance(target, ServiceResult):
            return target
        client, network_id = target
        feed_hash = _decode_ref(op, feed_id)
        if isinstance(feed_hash, ServiceResult):
            return feed_hash

        try:
            await client.delete_feed(feed_hash, cell_id=cell_id_from_string(network_id))
        except ConductorError as exc:
            return self._conductor_failed(op, exc, "Failed to delete feed")
        return ServiceResult(ok=True, op=op, data={"network_id": network_id, "feed_id": feed_id})

    @traced
    async def add_share_to_feed(self, feed_id: str, share_id: str) -> ServiceResult:
        """Link an existing share of the active network into a feed."""
        op = "feed_add_share"
        target = self._target(op)
        if isinstance(target, ServiceResult):
            return target
        client, network_id = target
        feed_hash = _decode_ref(op, feed_id)
        if isinstance(feed_hash, ServiceResult):
            return feed_hash
        share_hash = _decode_ref(op, share_id)
        if isinstance(share_hash, ServiceResult):
            return share_hash

        try:
            await client.add_share_to_feed(feed_hash, share_hash, cell_id=cell_id_from_string(network_id))
        except ConductorError as exc:
            return self._conductor_failed(op, exc, "Failed to add share to feed")
        return ServiceResult(
            ok=True,
            op=op,
            data={"network_id": network_id, "feed_id": feed_id, "share_id": share_id},
        )

    @traced
    async def feed_shares(self, feed_id: str) -> ServiceResult:
        """Shares in a feed, most recently added first."""
        op = "feed_shares"
        target = self._target(op)
        if isinstance(target, ServiceResult):
            return target
        client, network_id = target
        feed_hash = _decode_ref(op, feed_id)
        if isinstance(feed_hash, ServiceResult):
            return feed_hash

        try:
            infos = await client.get_feed_shares(feed_hash, cell_id=cell_id_from_string(network_id))
            shares = [to_share_item(info) for info in infos]
        except (ConductorError, LookupError, TypeError, ValueError) as exc:
            return self._conductor_failed(op, exc, "Failed to load feed shares")
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "network_id": network_id,
                "feed_id": feed_id,
                "items": [s.model_dump(mode="json") for s in shares],
                "count": len(shares),
            },
        )

    @traced
    async def add_feed_member(self, feed_id: str, member: str) -> ServiceResult:
        """Add an agent (base64 public key) to a feed's members."""
        op = "feed_add_member"
        target = self._target(op)
        if isinstance(target, ServiceResult):
            return target
        client, network_id = target
        feed_hash = _decode_ref(op, feed_id)
        if isinstance(feed_hash, ServiceResult):
            return feed_hash
        member_key = _decode_ref(op, member)
        if isinstance(member_key, ServiceResult):
            return member_key

        try:
            await client.add_member_to_feed(feed_hash, member_key, cell_id=cell_id_from_string(network_id))
        except ConductorError as exc:
            return self._conductor_failed(op, exc, "Failed to add feed member")
        return ServiceResult(
            ok=True,
            op=op,
            data={"network_id": network_id, "feed_id": feed_id, "member": member},
        )

    @traced
    async def feed_members(self, feed_id: str) -> ServiceResult:
        op = "feed_members"
        target = self._target(op)
        if isinstance(target, ServiceResult):
            return target
        client, network_id = target
        feed_hash = _decode_ref(op, feed_id)
        if isinstance(feed_hash, ServiceResult):
            return feed_hash

        try:
            keys = await client.get_feed_members(feed_hash, cell_id=cell_id_from_string(network_id))
            members = [encode_hash(key) for key in keys]
        except (ConductorError, TypeError) as exc:
            return self._conductor_failed(op, exc, "Failed to load feed members")
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "network_id": network_id,
                "feed_id": feed_id,
                "items": [{"id": m} for m in members],
                "count": len(members),
            },
        )

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Return to the empty initial state. The durable selection is kept."""
        if self._cache is not None:
            self._cache.reset()
        if self._selector is not None:
            self._selector.forget()
        self._state = SessionState()
        self._notify()

    def disconnect(self) -> None:
        """Reset and drop the conductor connection."""
        self.reset()
        self._workspace.disconnect()
        self._connection = None
        self._registry = None
        self._cache = None
        self._selector = None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _wire(self, connection: Connection) -> None:
        settings = self._workspace.settings
        self._connection = connection
        self._registry = PartitionRegistry(
            connection.authority,
            self._workspace.networks,
            role_name=settings.conductor.role_name,
            default_join_name=settings.network.default_join_name,
            fallback_name=settings.network.fallback_name,
        )
        self._cache = PartitionCache(connection.client, on_change=self._on_view_change)
        self._selector = ActiveSelector(
            self._workspace.networks,
            connection.client,
            self._cache,
            on_change=self._on_active_change,
        )

    async def _add_network(
        self,
        op: str,
        hook_name: str,
        action: Callable[[PartitionRegistry], Awaitable[Network]],
    ) -> ServiceResult:
        if self._registry is None:
            return self._not_connected(op, surface=True)

        self._update(loading=True, error=None)
        try:
            with trace_span("materialize"):
                network = await action(self._registry)
        except ValidationError as exc:
            self._update(loading=False, error=str(exc))
            return failure(op, exc.code, str(exc), reason=exc.reason)
        except AuthorityError as exc:
            return self._authority_failed(op, exc)

        others = [n for n in self._state.networks if n.id != network.id]
        self._update(networks=[*others, network], loading=False)

        warnings: list[str] = []
        self._dispatch_event(
            hook_name,
            {"network_id": network.id, "name": network.name},
            warnings,
            network_id=network.id,
        )
        await self._activate(network.id, warnings)
        return ServiceResult(
            ok=True,
            op=op,
            data=_network_data(self._state.find(network.id) or network),
            warnings=warnings,
        )

    async def _activate(self, network_id: str, warnings: list[str]) -> None:
        assert self._selector is not None
        previous = self._state.active_id
        await self._selector.select(network_id)
        if previous != network_id:
            self._dispatch_switch(previous, network_id, warnings)

    def _dispatch_switch(self, previous: str | None, network_id: str, warnings: list[str]) -> None:
        self._dispatch_event(
            "post_network_switch",
            {"previous_id": previous, "network_id": network_id},
            warnings,
            network_id=network_id,
        )

    def _target(self, op: str) -> tuple[FeedClient, str] | ServiceResult:
        """The client and active network ID for a feed call, or why there is none."""
        if self._connection is None or self._cache is None or self._selector is None:
            return self._not_connected(op)
        network_id = self._selector.active_id
        if network_id is None:
            return failure(op, "NO_ACTIVE_NETWORK", "No network selected")
        return self._connection.client, network_id

    def _not_connected(self, op: str, *, surface: bool = False) -> ServiceResult:
        exc = NotConnectedError()
        if surface:
            self._update(error=str(exc))
        return failure(op, exc.code, str(exc))

    def _authority_failed(self, op: str, exc: AuthorityError) -> ServiceResult:
        logger.warning("%s failed: %s", op, exc)
        self._update(loading=False, error=str(exc))
        return failure(op, exc.code, str(exc))

    def _conductor_failed(self, op: str, exc: Exception, fallback: str) -> ServiceResult:
        message = error_message(exc, fallback)
        logger.warning("%s failed: %s", op, message)
        self._update(error=message)
        return failure(op, "CONDUCTOR_ERROR", message)

    @staticmethod
    def _view_data(view: ShareView) -> dict[str, Any]:
        return {
            "network_id": view.network_id,
            "items": [s.model_dump(mode="json") for s in view.shares],
            "count": len(view.shares),
            "loading": view.loading,
            "error": view.error,
        }

    def _on_view_change(self, view: ShareView) -> None:
        self._update(view=view)

    def _on_active_change(self, network_id: str | None) -> None:
        self._update(active_id=network_id)

    def _update(self, **changes: Any) -> None:
        """Replace the state and notify listeners.

        ``is_active`` flags are recomputed whenever the network list or the
        active ID changes, so at most one network is ever flagged.
        """
        state = self._state.model_copy(update=changes)
        if "networks" in changes or "active_id" in changes:
            state = state.model_copy(
                update={
                    "networks": [
                        n.model_copy(update={"is_active": n.id == state.active_id})
                        for n in state.networks
                    ]
                }
            )
        self._state = state
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            self._notify_one(listener)

    def _notify_one(self, listener: Callable[[SessionState], None]) -> None:
        try:
            listener(self._state)
        except Exception:
            logger.warning("State listener failed", exc_info=True)
