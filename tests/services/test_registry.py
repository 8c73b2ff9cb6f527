"""Tests for PartitionRegistry — network lifecycle against the conductor."""

from __future__ import annotations

from dataclasses import replace

import pytest

from sharectl.domain.ids import cell_id_to_string
from sharectl.domain.secrets import REASON_EMPTY_WORD, REASON_WRONG_WORD_COUNT, is_valid_passphrase
from sharectl.domain.types import NetworkRecord
from sharectl.infrastructure.store import NetworkStore
from sharectl.services.errors import AuthorityError, ValidationError
from sharectl.services.registry import UNKNOWN_JOINED_AT, PartitionRegistry
from tests.conftest import PASSPHRASE, FakeAuthority, fake_cell

SEED = "sharefeed-apple-river-candle-orbit-maple"


@pytest.fixture
def registry(authority: FakeAuthority, network_store: NetworkStore) -> PartitionRegistry:
    return PartitionRegistry(authority, network_store, clock=lambda: 1234)


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_with_passphrase(
        self, registry: PartitionRegistry, authority: FakeAuthority, network_store: NetworkStore
    ) -> None:
        network = await registry.create("Book club", PASSPHRASE)
        assert network.id == cell_id_to_string(fake_cell(SEED))
        assert network.name == "Book club"
        assert network.passphrase == PASSPHRASE
        assert network.joined_at == 1234
        assert authority.calls == [("materialize", ("sharefeed", SEED))]
        assert network_store.get(network.id) == NetworkRecord.from_network(network)

    @pytest.mark.asyncio
    async def test_create_generates_passphrase(self, registry: PartitionRegistry) -> None:
        network = await registry.create("Fresh")
        assert is_valid_passphrase(network.passphrase)

    @pytest.mark.asyncio
    async def test_passphrase_is_canonicalized(
        self, registry: PartitionRegistry, authority: FakeAuthority
    ) -> None:
        network = await registry.create("Trim", f"  {PASSPHRASE}\n")
        assert network.passphrase == PASSPHRASE
        assert authority.calls[0][1][1] == SEED

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("passphrase", "reason"),
        [
            ("one two three", REASON_WRONG_WORD_COUNT),
            ("one two  three four", REASON_EMPTY_WORD),
        ],
    )
    async def test_invalid_passphrase_never_reaches_authority(
        self,
        registry: PartitionRegistry,
        authority: FakeAuthority,
        network_store: NetworkStore,
        passphrase: str,
        reason: str,
    ) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await registry.create("Bad", passphrase)
        assert exc_info.value.reason == reason
        assert exc_info.value.code == "INVALID_PASSPHRASE"
        assert authority.calls == []
        assert network_store.load() == []

    @pytest.mark.asyncio
    async def test_authority_failure_leaves_store_untouched(
        self, registry: PartitionRegistry, authority: FakeAuthority, network_store: NetworkStore
    ) -> None:
        authority.fail["materialize"] = "conductor down"
        with pytest.raises(AuthorityError, match="conductor down"):
            await registry.create("Book club", PASSPHRASE)
        assert network_store.load() == []

    @pytest.mark.asyncio
    async def test_blank_authority_error_gets_fallback_message(
        self, registry: PartitionRegistry, authority: FakeAuthority
    ) -> None:
        authority.fail["materialize"] = ""
        with pytest.raises(AuthorityError, match="Failed to create network"):
            await registry.create("Book club", PASSPHRASE)


class TestJoin:
    @pytest.mark.asyncio
    async def test_join_default_name(self, registry: PartitionRegistry) -> None:
        network = await registry.join(PASSPHRASE)
        assert network.name == "Shared Feed"

    @pytest.mark.asyncio
    async def test_join_reaches_same_network_as_create(
        self, authority: FakeAuthority, network_store: NetworkStore
    ) -> None:
        created = await PartitionRegistry(authority, network_store).create("A", PASSPHRASE)
        joined = await PartitionRegistry(FakeAuthority(), network_store).join(PASSPHRASE)
        assert joined.id == created.id

    @pytest.mark.asyncio
    async def test_duplicate_join_is_authority_error(self, registry: PartitionRegistry) -> None:
        await registry.join(PASSPHRASE, "First")
        with pytest.raises(AuthorityError, match="already exists"):
            await registry.join(PASSPHRASE, "Second")


class TestList:
    @pytest.mark.asyncio
    async def test_left_join_with_local_records(
        self, registry: PartitionRegistry, authority: FakeAuthority
    ) -> None:
        created = await registry.create("Mine", PASSPHRASE)
        remote_only = authority.add("sharefeed-x-y-z-w-v", name="sharefeed.1")

        networks = await registry.list()
        assert [n.id for n in networks] == [created.id, remote_only]
        assert networks[0].name == "Mine"
        assert networks[0].passphrase == PASSPHRASE
        assert networks[1].name == "sharefeed.1"
        assert networks[1].passphrase == "x y z w v"
        assert networks[1].joined_at == UNKNOWN_JOINED_AT

    @pytest.mark.asyncio
    async def test_remote_only_join_time_is_stable(
        self, authority: FakeAuthority, network_store: NetworkStore
    ) -> None:
        ticks = iter(range(1000, 2000))
        registry = PartitionRegistry(authority, network_store, clock=lambda: next(ticks))
        authority.add("sharefeed-x-y-z-w-v")
        first = await registry.list()
        second = await registry.list()
        assert first[0].joined_at == second[0].joined_at == UNKNOWN_JOINED_AT

    @pytest.mark.asyncio
    async def test_authority_order_wins(
        self, registry: PartitionRegistry, authority: FakeAuthority
    ) -> None:
        a = authority.add("sharefeed-a")
        b = authority.add("sharefeed-b")
        authority.cells.reverse()
        assert [n.id for n in await registry.list()] == [b, a]

    @pytest.mark.asyncio
    async def test_fallback_name_without_metadata(
        self, registry: PartitionRegistry, authority: FakeAuthority
    ) -> None:
        authority.add("sharefeed-a")
        authority.report_seeds = False
        (network,) = await registry.list()
        assert network.name == "Unnamed Network"
        assert network.passphrase == ""

    @pytest.mark.asyncio
    async def test_stale_local_records_are_pruned(
        self, registry: PartitionRegistry, network_store: NetworkStore
    ) -> None:
        network_store.save(NetworkRecord(id="gone", name="Old", joined_at=1))
        assert await registry.list() == []
        assert network_store.load() == []

    @pytest.mark.asyncio
    async def test_list_failure(self, registry: PartitionRegistry, authority: FakeAuthority) -> None:
        authority.fail["list_partitions"] = "offline"
        with pytest.raises(AuthorityError, match="offline"):
            await registry.list()

    @pytest.mark.asyncio
    async def test_remote_names_are_not_persisted(
        self, registry: PartitionRegistry, authority: FakeAuthority, network_store: NetworkStore
    ) -> None:
        authority.add("sharefeed-a", name="sharefeed.0")
        await registry.list()
        assert network_store.load() == []


class TestDisableEnableRename:
    @pytest.mark.asyncio
    async def test_disable_forgets_locally(
        self, registry: PartitionRegistry, authority: FakeAuthority, network_store: NetworkStore
    ) -> None:
        network = await registry.create("Mine", PASSPHRASE)
        await registry.disable(network.id)
        assert network_store.get(network.id) is None
        assert await registry.list() == []

    @pytest.mark.asyncio
    async def test_disable_failure_keeps_record(
        self, registry: PartitionRegistry, authority: FakeAuthority, network_store: NetworkStore
    ) -> None:
        network = await registry.create("Mine", PASSPHRASE)
        authority.fail["deactivate"] = "nope"
        with pytest.raises(AuthorityError, match="nope"):
            await registry.disable(network.id)
        assert network_store.get(network.id) is not None

    @pytest.mark.asyncio
    async def test_enable_brings_network_back(
        self, registry: PartitionRegistry, authority: FakeAuthority
    ) -> None:
        network = await registry.create("Mine", PASSPHRASE)
        await registry.disable(network.id)
        await registry.enable(network.id)
        (restored,) = await registry.list()
        assert restored.id == network.id
        assert restored.passphrase == PASSPHRASE
        assert restored.name == "Unnamed Network"

    @pytest.mark.asyncio
    async def test_enable_names_from_conductor(
        self, registry: PartitionRegistry, authority: FakeAuthority
    ) -> None:
        network = await registry.create("Mine", PASSPHRASE)
        await registry.disable(network.id)
        authority.disabled[network.id] = replace(authority.disabled[network.id], name="sharefeed.0")
        await registry.enable(network.id)
        (restored,) = await registry.list()
        assert restored.name == "sharefeed.0"

    @pytest.mark.asyncio
    async def test_enable_failure(self, registry: PartitionRegistry, authority: FakeAuthority) -> None:
        with pytest.raises(AuthorityError):
            await registry.enable("unknown")

    @pytest.mark.asyncio
    async def test_rename_is_local_only(
        self, registry: PartitionRegistry, authority: FakeAuthority, network_store: NetworkStore
    ) -> None:
        network = await registry.create("Mine", PASSPHRASE)
        calls_before = list(authority.calls)
        assert registry.rename(network.id, "Renamed") is True
        assert authority.calls == calls_before
        assert network_store.get(network.id).name == "Renamed"  # type: ignore[union-attr]
        assert registry.rename("missing", "x") is False
