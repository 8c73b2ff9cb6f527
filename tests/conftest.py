"""Shared pytest fixtures and test helpers for sharectl tests."""

from __future__ import annotations

import asyncio
import hashlib
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner
from sqlalchemy.engine import Engine

from sharectl.config.settings import SharectlSettings
from sharectl.domain.ids import CellId, cell_id_to_string
from sharectl.infrastructure.conductor.base import ConductorError, MaterializedCell, ReportedCell
from sharectl.infrastructure.connection import Connection
from sharectl.infrastructure.database.engine import init_database
from sharectl.infrastructure.store import LocalStore, NetworkStore
from sharectl.infrastructure.workspace import Workspace

AGENT_KEY = b"\x84\x20\x24" + b"\x01" * 29
PASSPHRASE = "apple river candle orbit maple"


def fake_cell(seed: str) -> CellId:
    """Deterministic fake cell for a network seed."""
    return hashlib.sha256(seed.encode()).digest(), AGENT_KEY


def share_info(url: str, title: str, *, created_at: int = 1_700_000_000_000_000, **extra: Any) -> dict[str, Any]:
    """A conductor-shaped ``ShareItemInfo`` dict."""
    return {
        "action_hash": hashlib.sha256(f"{url}:{created_at}".encode()).digest(),
        "share_item": {"url": url, "title": title, "tags": [], **extra},
        "created_at": created_at,
        "author": AGENT_KEY,
    }


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeAuthority:
    """In-memory RemoteAuthority recording every call."""

    def __init__(self) -> None:
        self.cells: list[ReportedCell] = []
        self.disabled: dict[str, ReportedCell] = {}
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.fail: dict[str, str] = {}
        self.report_seeds = True

    def add(self, seed: str, name: str = "") -> str:
        cell = ReportedCell(cell_id=fake_cell(seed), name=name, network_seed=seed)
        self.cells.append(cell)
        return cell_id_to_string(cell.cell_id)

    def _check(self, op: str) -> None:
        if op in self.fail:
            raise ConductorError(self.fail[op])

    async def materialize(self, role_name: str, network_seed: str) -> MaterializedCell:
        self.calls.append(("materialize", (role_name, network_seed)))
        self._check("materialize")
        cell_id = fake_cell(network_seed)
        if any(c.cell_id == cell_id for c in self.cells):
            raise ConductorError("clone cell already exists")
        self.cells.append(ReportedCell(cell_id=cell_id, name="", network_seed=network_seed))
        return MaterializedCell(cell_id=cell_id)

    async def list_partitions(self) -> list[ReportedCell]:
        self.calls.append(("list_partitions", ()))
        self._check("list_partitions")
        if self.report_seeds:
            return list(self.cells)
        return [ReportedCell(cell_id=c.cell_id, name=c.name) for c in self.cells]

    async def deactivate(self, network_id: str) -> None:
        self.calls.append(("deactivate", (network_id,)))
        self._check("deactivate")
        for cell in self.cells:
            if cell_id_to_string(cell.cell_id) == network_id:
                self.cells.remove(cell)
                self.disabled[network_id] = cell
                return
        raise ConductorError(f"unknown cell {network_id}")

    async def activate(self, network_id: str) -> None:
        self.calls.append(("activate", (network_id,)))
        self._check("activate")
        cell = self.disabled.pop(network_id, None)
        if cell is None:
            raise ConductorError(f"unknown cell {network_id}")
        self.cells.append(cell)

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


class FakeFeedClient:
    """DataClient with per-cell share lists, failures, and gates.

    A gated cell blocks ``get_recent_shares`` until the test opens the gate,
    which lets tests interleave fetches deterministically.
    """

    def __init__(self) -> None:
        self.shares: dict[CellId, list[dict[str, Any]]] = {}
        self.errors: dict[CellId, Exception] = {}
        self.gates: dict[CellId, asyncio.Event] = {}
        self.fetches: list[CellId] = []
        self.retargets: list[CellId | None] = []
        self._target: CellId | None = None

    @property
    def target(self) -> CellId | None:
        return self._target

    @property
    def has_target(self) -> bool:
        return self._target is not None

    def retarget(self, cell_id: CellId | None) -> None:
        self._target = cell_id
        self.retargets.append(cell_id)

    def gate(self, cell_id: CellId) -> asyncio.Event:
        event = asyncio.Event()
        self.gates[cell_id] = event
        return event

    def _resolve(self, cell_id: CellId | None) -> CellId:
        target = cell_id if cell_id is not None else self._target
        if target is None:
            raise ConductorError("No network selected")
        return target

    async def get_recent_shares(self, *, cell_id: CellId | None = None) -> list[dict[str, Any]]:
        target = self._resolve(cell_id)
        self.fetches.append(target)
        gate = self.gates.get(target)
        if gate is not None:
            await gate.wait()
        if target in self.errors:
            raise self.errors[target]
        return list(self.shares.get(target, []))

    async def create_share_item(
        self, entry: dict[str, Any], *, cell_id: CellId | None = None
    ) -> dict[str, Any]:
        target = self._resolve(cell_id)
        existing = self.shares.setdefault(target, [])
        created_at = 1_700_000_000_000_000 + len(existing) + 1
        info = share_info(entry["url"], entry["title"], created_at=created_at)
        info["share_item"] = dict(entry)
        existing.insert(0, info)
        return info

    async def delete_share_item(self, action_hash: bytes, *, cell_id: CellId | None = None) -> bytes:
        target = self._resolve(cell_id)
        existing = self.shares.get(target, [])
        for info in existing:
            if info["action_hash"] == action_hash:
                existing.remove(info)
                return action_hash
        raise ConductorError("Share item not found")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def db_engine(tmp_path: Path) -> Iterator[Engine]:
    """Initialized SQLite engine with all tables created."""
    engine = init_database(tmp_path / ".sharectl")
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def local_store(db_engine: Engine) -> LocalStore:
    return LocalStore(db_engine)


@pytest.fixture
def network_store(local_store: LocalStore) -> NetworkStore:
    return NetworkStore(local_store)


@pytest.fixture
def settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> SharectlSettings:
    monkeypatch.delenv("SHARECTL_CONFIG", raising=False)
    return SharectlSettings.from_cli(data_root=tmp_path)


@pytest.fixture
def workspace(settings: SharectlSettings) -> Iterator[Workspace]:
    """Workspace on a temp directory, not yet connected."""
    ws = Workspace(settings)
    try:
        yield ws
    finally:
        ws.close()


@pytest.fixture
def authority() -> FakeAuthority:
    return FakeAuthority()


@pytest.fixture
def feed_client() -> FakeFeedClient:
    return FakeFeedClient()


@pytest.fixture
def connected_workspace(
    workspace: Workspace, authority: FakeAuthority, feed_client: FakeFeedClient
) -> Workspace:
    """Workspace with the fake authority and feed client attached."""
    workspace.attach(Connection(authority=authority, client=feed_client))  # type: ignore[arg-type]
    return workspace


@pytest.fixture
def _isolated_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Change CWD to a temp directory so the CLI creates an isolated workspace.

    Use via ``@pytest.mark.usefixtures("_isolated_root")`` on command test
    classes.
    """
    monkeypatch.delenv("SHARECTL_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
