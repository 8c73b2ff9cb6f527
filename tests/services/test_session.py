"""Tests for NetworkSession — the coordinator owning session state."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from sharectl.domain.ids import cell_id_to_string
from sharectl.domain.secrets import passphrase_to_seed, seed_to_passphrase
from sharectl.domain.types import SessionState
from sharectl.infrastructure.conductor.base import ConductorError
from sharectl.infrastructure.workspace import Workspace
from sharectl.plugins.hookspecs import hookimpl
from sharectl.services.session import NetworkSession
from tests.conftest import PASSPHRASE, FakeAuthority, FakeFeedClient, fake_cell, share_info

OTHER_PASSPHRASE = "amber river kiwi torch velvet"


@pytest.fixture
def session(connected_workspace: Workspace) -> NetworkSession:
    return NetworkSession(connected_workspace)


@pytest.fixture
def states(session: NetworkSession) -> list[SessionState]:
    seen: list[SessionState] = []
    session.subscribe(seen.append)
    return seen


def _id_for(passphrase: str) -> str:
    return cell_id_to_string(fake_cell(passphrase_to_seed(passphrase)))


class RecordingPlugin:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []

    @hookimpl
    def post_network_create(self, network_id: str, name: str) -> None:
        self.calls.append(("post_network_create", {"network_id": network_id, "name": name}))

    @hookimpl
    def post_network_switch(self, previous_id: str | None, network_id: str) -> None:
        self.calls.append(("post_network_switch", {"previous_id": previous_id, "network_id": network_id}))

    @hookimpl
    def post_network_rename(self, network_id: str, name: str) -> None:
        self.calls.append(("post_network_rename", {"network_id": network_id, "name": name}))


# ── Subscription ──────────────────────────────────────────────────────


class TestSubscribe:
    def test_called_immediately(self, session: NetworkSession) -> None:
        seen: list[SessionState] = []
        session.subscribe(seen.append)
        assert seen == [SessionState()]

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_notifications(self, session: NetworkSession) -> None:
        seen: list[SessionState] = []
        unsubscribe = session.subscribe(seen.append)
        unsubscribe()
        await session.init()
        assert len(seen) == 1
        unsubscribe()  # idempotent

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_session(self, session: NetworkSession) -> None:
        def broken(_state: SessionState) -> None:
            msg = "listener bug"
            raise RuntimeError(msg)

        session.subscribe(broken)
        result = await session.create_network("Books", PASSPHRASE)
        assert result.ok


# ── Create / join / list ──────────────────────────────────────────────


class TestCreateAndJoin:
    @pytest.mark.asyncio
    async def test_create_then_list(self, session: NetworkSession) -> None:
        result = await session.create_network("Books", PASSPHRASE)
        assert result.ok
        assert result.data["name"] == "Books"
        assert result.data["passphrase"] == PASSPHRASE

        listed = await session.refresh_networks()
        assert listed.ok
        books = [n for n in session.state.networks if n.name == "Books"]
        assert len(books) == 1
        assert seed_to_passphrase(passphrase_to_seed(books[0].passphrase)) == books[0].passphrase

    @pytest.mark.asyncio
    async def test_create_selects_new_network(
        self, session: NetworkSession, feed_client: FakeFeedClient
    ) -> None:
        result = await session.create_network("Books", PASSPHRASE)
        network_id = result.data["id"]
        assert session.state.active_id == network_id
        assert session.state.active_network is not None
        assert session.state.active_network.is_active is True
        assert feed_client.target == fake_cell(passphrase_to_seed(PASSPHRASE))
        assert session.state.view.network_id == network_id
        assert session.state.loading is False

    @pytest.mark.asyncio
    async def test_loading_observed_during_create(
        self, session: NetworkSession, states: list[SessionState]
    ) -> None:
        await session.create_network("Books", PASSPHRASE)
        assert any(s.loading for s in states)
        assert states[-1].loading is False

    @pytest.mark.asyncio
    async def test_invalid_passphrase(
        self, session: NetworkSession, authority: FakeAuthority
    ) -> None:
        result = await session.join_network("only three words")
        assert not result.ok
        assert result.error is not None
        assert result.error.code == "INVALID_PASSPHRASE"
        assert result.error.detail["reason"] == "wrong word count"
        assert session.state.error is not None
        assert session.state.loading is False
        assert authority.calls == []

    @pytest.mark.asyncio
    async def test_authority_failure_surfaces_error(
        self, session: NetworkSession, authority: FakeAuthority, connected_workspace: Workspace
    ) -> None:
        authority.fail["materialize"] = "conductor offline"
        result = await session.create_network("Books", PASSPHRASE)
        assert not result.ok
        assert result.error is not None
        assert result.error.code == "AUTHORITY_ERROR"
        assert session.state.error == "conductor offline"
        assert session.state.networks == []
        assert connected_workspace.networks.load() == []

    @pytest.mark.asyncio
    async def test_join_default_name(self, session: NetworkSession) -> None:
        result = await session.join_network(PASSPHRASE)
        assert result.data["name"] == "Shared Feed"

    @pytest.mark.asyncio
    async def test_success_clears_previous_error(self, session: NetworkSession) -> None:
        await session.join_network("bad")
        assert session.state.error
        await session.join_network(PASSPHRASE)
        assert session.state.error is None

    @pytest.mark.asyncio
    async def test_only_one_network_active(self, session: NetworkSession) -> None:
        await session.create_network("A", PASSPHRASE)
        await session.create_network("B", OTHER_PASSPHRASE)
        flagged = [n.name for n in session.state.networks if n.is_active]
        assert flagged == ["B"]


# ── Init / restore ────────────────────────────────────────────────────


class TestInit:
    @pytest.mark.asyncio
    async def test_init_restores_last_active(
        self, connected_workspace: Workspace, session: NetworkSession
    ) -> None:
        await session.create_network("A", PASSPHRASE)
        await session.create_network("B", OTHER_PASSPHRASE)

        fresh = NetworkSession(connected_workspace)
        result = await fresh.init()
        assert result.ok
        assert fresh.state.active_id == _id_for(OTHER_PASSPHRASE)
        assert [n.name for n in fresh.state.networks] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_init_with_nothing(self, session: NetworkSession) -> None:
        result = await session.init()
        assert result.ok
        assert result.data == {"networks": [], "active_id": None}
        assert session.state.view.has_network is False

    @pytest.mark.asyncio
    async def test_init_failure(self, session: NetworkSession, authority: FakeAuthority) -> None:
        authority.fail["list_partitions"] = "down"
        result = await session.init()
        assert not result.ok
        assert session.state.error == "down"
        assert session.state.loading is False


# ── Switching ─────────────────────────────────────────────────────────


class TestSetActive:
    @pytest.mark.asyncio
    async def test_unknown_network(self, session: NetworkSession) -> None:
        result = await session.set_active_network("nope")
        assert result.error is not None
        assert result.error.code == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_rapid_switch_shows_last_selected(
        self, session: NetworkSession, feed_client: FakeFeedClient
    ) -> None:
        await session.create_network("A", PASSPHRASE)
        await session.create_network("B", OTHER_PASSPHRASE)
        session.cache.reset()  # type: ignore[union-attr]
        cell_a = fake_cell(passphrase_to_seed(PASSPHRASE))
        cell_b = fake_cell(passphrase_to_seed(OTHER_PASSPHRASE))
        feed_client.shares[cell_a] = [share_info("https://a", "from A")]
        feed_client.shares[cell_b] = [share_info("https://b", "from B")]
        gate_a = feed_client.gate(cell_a)
        gate_b = feed_client.gate(cell_b)

        to_a = asyncio.ensure_future(session.set_active_network(_id_for(PASSPHRASE)))
        to_b = asyncio.ensure_future(session.set_active_network(_id_for(OTHER_PASSPHRASE)))
        for _ in range(5):
            await asyncio.sleep(0)

        gate_b.set()
        await to_b
        gate_a.set()
        await to_a
        await session.wait_idle()

        assert session.state.active_id == _id_for(OTHER_PASSPHRASE)
        assert [s.title for s in session.state.view.shares] == ["from B"]
        assert feed_client.target == cell_b

    @pytest.mark.asyncio
    async def test_rapid_switch_earlier_fetch_resolving_first(
        self, session: NetworkSession, feed_client: FakeFeedClient
    ) -> None:
        await session.create_network("A", PASSPHRASE)
        await session.create_network("B", OTHER_PASSPHRASE)
        session.cache.reset()  # type: ignore[union-attr]
        cell_a = fake_cell(passphrase_to_seed(PASSPHRASE))
        cell_b = fake_cell(passphrase_to_seed(OTHER_PASSPHRASE))
        feed_client.shares[cell_a] = [share_info("https://a", "from A")]
        feed_client.shares[cell_b] = [share_info("https://b", "from B")]
        gate_a = feed_client.gate(cell_a)
        gate_b = feed_client.gate(cell_b)

        to_a = asyncio.ensure_future(session.set_active_network(_id_for(PASSPHRASE)))
        to_b = asyncio.ensure_future(session.set_active_network(_id_for(OTHER_PASSPHRASE)))
        for _ in range(5):
            await asyncio.sleep(0)

        gate_a.set()
        await to_a
        assert session.state.active_id == _id_for(OTHER_PASSPHRASE)
        assert session.state.view.loading is True
        assert session.state.view.shares == []

        gate_b.set()
        await to_b
        await session.wait_idle()
        assert session.state.view.loading is False
        assert [s.title for s in session.state.view.shares] == ["from B"]
        assert feed_client.target == cell_b

    @pytest.mark.asyncio
    async def test_cached_switch_survives_background_failure(
        self, session: NetworkSession, feed_client: FakeFeedClient, states: list[SessionState]
    ) -> None:
        cell_a = fake_cell(passphrase_to_seed(PASSPHRASE))
        feed_client.shares[cell_a] = [share_info("https://a", "cached A")]
        await session.create_network("A", PASSPHRASE)
        await session.create_network("B", OTHER_PASSPHRASE)
        feed_client.errors[cell_a] = ConductorError("transient")
        states.clear()

        result = await session.set_active_network(_id_for(PASSPHRASE))
        assert result.data["cached"] is True
        assert [s.title for s in session.state.view.shares] == ["cached A"]
        await session.wait_idle()
        assert all(not s.view.loading for s in states)
        assert session.state.view.error is None
        assert [s.title for s in session.state.view.shares] == ["cached A"]


# ── Leave / enable ────────────────────────────────────────────────────


class TestLeave:
    @pytest.mark.asyncio
    async def test_leave_active_moves_to_other(
        self, session: NetworkSession, connected_workspace: Workspace
    ) -> None:
        await session.create_network("A", PASSPHRASE)
        await session.create_network("B", OTHER_PASSPHRASE)
        b_id = _id_for(OTHER_PASSPHRASE)

        result = await session.leave_network(b_id)
        assert result.ok
        assert result.data["active_id"] == _id_for(PASSPHRASE)
        assert session.state.active_id == _id_for(PASSPHRASE)
        assert connected_workspace.networks.get(b_id) is None
        assert [n.name for n in session.state.networks] == ["A"]

    @pytest.mark.asyncio
    async def test_leave_last_network(
        self, session: NetworkSession, feed_client: FakeFeedClient
    ) -> None:
        await session.create_network("A", PASSPHRASE)
        result = await session.leave_network(_id_for(PASSPHRASE))
        assert result.data["active_id"] is None
        assert session.state.active_id is None
        assert session.state.view.has_network is False
        assert feed_client.target is None

    @pytest.mark.asyncio
    async def test_leave_failure_changes_nothing(
        self, session: NetworkSession, authority: FakeAuthority
    ) -> None:
        await session.create_network("A", PASSPHRASE)
        before = session.state.networks
        authority.fail["deactivate"] = "refused"
        result = await session.leave_network(_id_for(PASSPHRASE))
        assert result.error is not None
        assert result.error.code == "AUTHORITY_ERROR"
        assert session.state.networks == before
        assert session.state.active_id == _id_for(PASSPHRASE)

    @pytest.mark.asyncio
    async def test_leave_unknown(self, session: NetworkSession) -> None:
        result = await session.leave_network("nope")
        assert result.error is not None
        assert result.error.code == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_enable_restores_and_selects(self, session: NetworkSession) -> None:
        await session.create_network("A", PASSPHRASE)
        a_id = _id_for(PASSPHRASE)
        await session.leave_network(a_id)

        result = await session.enable_network(a_id)
        assert result.ok
        assert session.state.active_id == a_id
        (network,) = session.state.networks
        assert network.passphrase == PASSPHRASE
        # Local metadata was dropped on leave; the remote default applies.
        assert network.name == "Unnamed Network"


# ── Rename ────────────────────────────────────────────────────────────


class TestRename:
    @pytest.mark.asyncio
    async def test_rename_makes_no_authority_call(
        self, session: NetworkSession, authority: FakeAuthority, connected_workspace: Workspace
    ) -> None:
        await session.create_network("A", PASSPHRASE)
        calls_before = len(authority.calls)
        result = await session.update_name(_id_for(PASSPHRASE), "  Renamed  ")
        assert result.ok
        assert len(authority.calls) == calls_before
        assert session.state.networks[0].name == "Renamed"
        assert session.state.networks[0].is_active is True
        assert connected_workspace.networks.get(_id_for(PASSPHRASE)).name == "Renamed"  # type: ignore[union-attr]

    @pytest.mark.asyncio
    async def test_blank_name(self, session: NetworkSession) -> None:
        await session.create_network("A", PASSPHRASE)
        result = await session.update_name(_id_for(PASSPHRASE), "   ")
        assert result.error is not None
        assert result.error.code == "INVALID_NAME"

    @pytest.mark.asyncio
    async def test_rename_without_local_record_writes_one(
        self, session: NetworkSession, authority: FakeAuthority, connected_workspace: Workspace
    ) -> None:
        remote_id = authority.add(passphrase_to_seed(PASSPHRASE))
        await session.init()
        result = await session.update_name(remote_id, "Named")
        assert result.ok
        record = connected_workspace.networks.get(remote_id)
        assert record is not None
        assert record.name == "Named"
        assert record.passphrase == PASSPHRASE


# ── Shares ────────────────────────────────────────────────────────────


class TestShares:
    @pytest.mark.asyncio
    async def test_no_active_network(self, session: NetworkSession) -> None:
        await session.init()
        assert session.list_shares().error.code == "NO_ACTIVE_NETWORK"  # type: ignore[union-attr]
        created = await session.create_share("https://x", "X")
        assert created.error is not None
        assert created.error.code == "NO_ACTIVE_NETWORK"
        refreshed = await session.refresh_shares()
        assert refreshed.error is not None
        assert refreshed.error.code == "NO_ACTIVE_NETWORK"

    @pytest.mark.asyncio
    async def test_create_and_list(self, session: NetworkSession) -> None:
        await session.create_network("A", PASSPHRASE)
        result = await session.create_share("https://x", "X", tags=["t"])
        assert result.ok
        assert result.data["item"]["title"] == "X"
        listed = session.list_shares()
        assert listed.data["count"] == 1
        assert listed.data["items"][0]["tags"] == ["t"]

    @pytest.mark.asyncio
    async def test_create_failure(
        self, session: NetworkSession, feed_client: FakeFeedClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        await session.create_network("A", PASSPHRASE)

        async def boom(*_args: Any, **_kwargs: Any) -> Any:
            raise ConductorError("write refused")

        monkeypatch.setattr(feed_client, "create_share_item", boom)
        result = await session.create_share("https://x", "X")
        assert result.error is not None
        assert result.error.code == "CONDUCTOR_ERROR"
        assert session.state.error == "write refused"

    @pytest.mark.asyncio
    async def test_delete(self, session: NetworkSession, feed_client: FakeFeedClient) -> None:
        await session.create_network("A", PASSPHRASE)
        await session.create_share("https://x", "X")
        await session.create_share("https://y", "Y")
        target = session.state.view.shares[0]

        result = await session.delete_share(target.id)
        assert result.ok
        assert [s.id for s in session.state.view.shares] != []
        assert target.id not in [s.id for s in session.state.view.shares]
        assert target.id not in [s.id for s in session.cache.get(session.state.active_id) or []]  # type: ignore[union-attr, arg-type]

    @pytest.mark.asyncio
    async def test_delete_unknown(self, session: NetworkSession) -> None:
        await session.create_network("A", PASSPHRASE)
        result = await session.delete_share("missing")
        assert result.error is not None
        assert result.error.code == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_refresh_failure(
        self, session: NetworkSession, feed_client: FakeFeedClient
    ) -> None:
        await session.create_network("A", PASSPHRASE)
        feed_client.errors[fake_cell(passphrase_to_seed(PASSPHRASE))] = ConductorError("gone")
        result = await session.refresh_shares()
        assert result.error is not None
        assert result.error.code == "FETCH_FAILED"
        assert session.list_shares().error.code == "FETCH_FAILED"  # type: ignore[union-attr]


# ── Events ────────────────────────────────────────────────────────────


class TestEvents:
    @pytest.mark.asyncio
    async def test_lifecycle_hooks_fire(
        self, connected_workspace: Workspace, session: NetworkSession
    ) -> None:
        bus = connected_workspace.init_event_bus(sync=True)
        plugin = RecordingPlugin()
        bus._pm.register_plugin(plugin)

        result = await session.create_network("A", PASSPHRASE)
        await session.update_name(result.data["id"], "B")

        assert [name for name, _ in plugin.calls] == [
            "post_network_create",
            "post_network_switch",
            "post_network_rename",
        ]
        assert plugin.calls[1][1] == {"previous_id": None, "network_id": result.data["id"]}

    @pytest.mark.asyncio
    async def test_failing_plugin_is_not_an_error(
        self, connected_workspace: Workspace, session: NetworkSession
    ) -> None:
        class Broken:
            @hookimpl
            def post_network_create(self, network_id: str, name: str) -> None:
                msg = "plugin bug"
                raise RuntimeError(msg)

        bus = connected_workspace.init_event_bus(sync=True)
        bus._pm.register_plugin(Broken())
        result = await session.create_network("A", PASSPHRASE)
        assert result.ok
        assert result.warnings == []

        create, switch = bus.history(result.data["id"])
        assert (create.hook_name, create.status, create.retries) == ("post_network_create", "failed", 1)
        assert create.error == "plugin bug"
        assert switch.status == "completed"

    @pytest.mark.asyncio
    async def test_wal_rows_keyed_by_network(
        self, connected_workspace: Workspace, session: NetworkSession
    ) -> None:
        bus = connected_workspace.init_event_bus(sync=True)
        a = (await session.create_network("Books", PASSPHRASE)).data["id"]
        b = (await session.create_network("Music", "amber river kiwi torch velvet")).data["id"]
        await session.leave_network(b)
        await session.update_name(a, "Reading")

        assert [(e.hook_name, e.payload) for e in bus.history(b)] == [
            ("post_network_create", {"network_id": b, "name": "Music"}),
            ("post_network_switch", {"previous_id": a, "network_id": b}),
            ("post_network_leave", {"network_id": b, "active_id": a}),
        ]
        assert [(e.hook_name, e.payload) for e in bus.history(a)] == [
            ("post_network_create", {"network_id": a, "name": "Books"}),
            ("post_network_switch", {"previous_id": None, "network_id": a}),
            ("post_network_switch", {"previous_id": b, "network_id": a}),
            ("post_network_rename", {"network_id": a, "name": "Reading"}),
        ]
        assert all(e.status == "completed" for e in bus.history(a) + bus.history(b))

    @pytest.mark.asyncio
    async def test_enable_event(
        self, connected_workspace: Workspace, session: NetworkSession
    ) -> None:
        bus = connected_workspace.init_event_bus(sync=True)
        network_id = (await session.create_network("Books", PASSPHRASE)).data["id"]
        await session.leave_network(network_id)
        await session.enable_network(network_id)

        (enable,) = [e for e in bus.history(network_id) if e.hook_name == "post_network_enable"]
        assert enable.payload == {"network_id": network_id}
        assert enable.network_id == network_id


# ── Not connected / teardown ─────────────────────────────────────────


class TestNotConnected:
    @pytest.mark.asyncio
    async def test_operations_are_no_ops(self, workspace: Workspace) -> None:
        session = NetworkSession(workspace)
        assert session.connected is False

        for result in (
            await session.init(),
            await session.create_network("A", PASSPHRASE),
            await session.join_network(PASSPHRASE),
            await session.set_active_network("x"),
            await session.leave_network("x"),
            await session.enable_network("x"),
            await session.update_name("x", "y"),
            await session.refresh_shares(),
            await session.create_share("https://x", "X"),
            await session.delete_share("x"),
            session.list_shares(),
        ):
            assert result.ok is False
            assert result.error is not None
            assert result.error.code == "NOT_CONNECTED"

        assert session.state.error == "Not connected to conductor"
        assert session.state.networks == []
        await session.wait_idle()


class TestReset:
    @pytest.mark.asyncio
    async def test_reset_clears_state_keeps_pointer(
        self, session: NetworkSession, connected_workspace: Workspace, states: list[SessionState]
    ) -> None:
        await session.create_network("A", PASSPHRASE)
        session.reset()
        assert session.state == SessionState()
        assert states[-1] == SessionState()
        assert connected_workspace.networks.get_active_id() == _id_for(PASSPHRASE)

    @pytest.mark.asyncio
    async def test_disconnect(self, session: NetworkSession, connected_workspace: Workspace) -> None:
        await session.create_network("A", PASSPHRASE)
        session.disconnect()
        assert session.connected is False
        assert connected_workspace.connection is None
        result = await session.init()
        assert result.error is not None
        assert result.error.code == "NOT_CONNECTED"
