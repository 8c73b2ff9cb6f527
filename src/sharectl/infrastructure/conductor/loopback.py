"""Loopback conductor — an in-process stand-in for the replication engine.

Implements both :class:`RemoteAuthority` and :class:`ZomeTransport` on top
of the local SQLite database, so a single machine can create, join, and
switch networks without a running conductor. Nothing is replicated: a
network is shared only with other sessions using the same data root.

Clone identity follows the real conductor's rule: the DNA hash is a pure
function of role name and network seed, so the same passphrase always
yields the same cell, and cloning it twice is refused.

A share update is stored as a revision row pointing at the share it
updates. Listings and feeds always address the original share and show
the newest revision's content. Feeds and their membership are plain
link rows (feed to share, feed to member) scoped to the cell.

Calls are synchronous SQLAlchemy Core underneath; the async signatures
match the protocols and yield nothing. Database failures surface as
:class:`ConductorError`, the same as a remote conductor failing.
"""

from __future__ import annotations

import hashlib
import json
import logging
import secrets
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError

from sharectl.domain.ids import cell_id_from_string, decode_hash, encode_hash
from sharectl.infrastructure.conductor.base import (
    ConductorError,
    MaterializedCell,
    ReportedCell,
)
from sharectl.infrastructure.database.schema import (
    loopback_cells,
    loopback_feeds,
    loopback_links,
    loopback_shares,
)
from sharectl.services._helpers import now_iso, now_us

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from sqlalchemy import Connection, Select, Table
    from sqlalchemy.engine import Engine

    from sharectl.domain.ids import CellId
    from sharectl.infrastructure.store import LocalStore

logger = logging.getLogger(__name__)

AGENT_KEY_STORE_KEY = "loopback_agent_pub_key"
RECENT_SHARES_LIMIT = 100

LINK_FEED_SHARE = "feed_share"
LINK_FEED_MEMBER = "feed_member"


def clone_dna_hash(role_name: str, network_seed: str) -> bytes:
    """Deterministic DNA hash of a clone: ``sha256("<role>:<seed>")``."""
    return hashlib.sha256(f"{role_name}:{network_seed}".encode()).digest()


class LoopbackConductor:
    """Conductor backend persisted in the local database."""

    def __init__(self, engine: Engine, store: LocalStore) -> None:
        self._engine = engine
        self._store = store
        self._agent_key: bytes | None = None
        self._handlers: dict[str, Callable[[Connection, str, Any], Any]] = {
            "get_recent_shares": self._get_recent_shares,
            "get_shares_for_week": self._get_shares_for_week,
            "get_share_item": self._get_share_item,
            "create_share_item": self._create_share_item,
            "update_share_item": self._update_share_item,
            "delete_share_item": self._delete_share_item,
            "create_feed": self._create_feed,
            "get_my_feeds": self._get_my_feeds,
            "delete_feed": self._delete_feed,
            "add_share_to_feed": self._add_share_to_feed,
            "get_feed_shares": self._get_feed_shares,
            "add_member_to_feed": self._add_member_to_feed,
            "get_feed_members": self._get_feed_members,
        }

    @property
    def agent_key(self) -> bytes:
        """This installation's agent key, generated on first use."""
        if self._agent_key is None:
            try:
                stored = self._store.get(AGENT_KEY_STORE_KEY)
                if stored:
                    self._agent_key = decode_hash(stored)
                else:
                    self._agent_key = secrets.token_bytes(32)
                    self._store.set(AGENT_KEY_STORE_KEY, encode_hash(self._agent_key))
            except SQLAlchemyError as exc:
                raise ConductorError(f"Loopback agent key unavailable: {exc}") from exc
        return self._agent_key

    @contextmanager
    def _transaction(self) -> Iterator[Connection]:
        """One database transaction; storage errors become :class:`ConductorError`."""
        try:
            with self._engine.begin() as conn:
                yield conn
        except SQLAlchemyError as exc:
            logger.warning("Loopback storage error: %s", exc)
            raise ConductorError(f"Loopback storage error: {exc}") from exc

    # ------------------------------------------------------------------
    # RemoteAuthority
    # ------------------------------------------------------------------

    async def materialize(self, role_name: str, network_seed: str) -> MaterializedCell:
        dna_hash = clone_dna_hash(role_name, network_seed)
        key = encode_hash(dna_hash)

        with self._transaction() as conn:
            row = conn.execute(
                select(loopback_cells.c.enabled).where(loopback_cells.c.dna_hash == key)
            ).first()
            if row is not None:
                if row.enabled:
                    raise ConductorError("Clone cell already exists for this network seed")
                raise ConductorError("Clone cell for this network seed is disabled; enable it")

            last = conn.execute(select(func.max(loopback_cells.c.position))).scalar()
            position = (last or 0) + 1
            # Clone ids follow the conductor convention "<role>.<index>".
            name = f"{role_name}.{position - 1}"
            conn.execute(
                insert(loopback_cells).values(
                    dna_hash=key,
                    role_name=role_name,
                    network_seed=network_seed,
                    name=name,
                    enabled=1,
                    position=position,
                    created=now_iso(),
                )
            )

        logger.debug("Materialized clone cell %s", name)
        return MaterializedCell(cell_id=(dna_hash, self.agent_key), name=name)

    async def list_partitions(self) -> list[ReportedCell]:
        with self._transaction() as conn:
            rows = conn.execute(
                select(loopback_cells)
                .where(loopback_cells.c.enabled == 1)
                .order_by(loopback_cells.c.position)
            ).fetchall()
        return [
            ReportedCell(
                cell_id=(decode_hash(row.dna_hash), self.agent_key),
                name=row.name,
                network_seed=row.network_seed,
                enabled=True,
            )
            for row in rows
        ]

    async def deactivate(self, network_id: str) -> None:
        self._set_enabled(network_id, enabled=False)

    async def activate(self, network_id: str) -> None:
        self._set_enabled(network_id, enabled=True)

    def _set_enabled(self, network_id: str, *, enabled: bool) -> None:
        key = self._dna_key(network_id)
        with self._transaction() as conn:
            result = conn.execute(
                update(loopback_cells)
                .where(loopback_cells.c.dna_hash == key)
                .values(enabled=1 if enabled else 0)
            )
            if result.rowcount == 0:
                raise ConductorError(f"Unknown clone cell: {network_id}")

    def _dna_key(self, network_id: str) -> str:
        try:
            dna_hash, _agent = cell_id_from_string(network_id)
        except ValueError as exc:
            raise ConductorError(str(exc)) from exc
        return encode_hash(dna_hash)

    # ------------------------------------------------------------------
    # ZomeTransport
    # ------------------------------------------------------------------

    async def call_zome(self, cell_id: CellId, fn_name: str, payload: Any) -> Any:
        dna_hash, agent_key = cell_id
        if agent_key != self.agent_key:
            raise ConductorError("Cell belongs to a different agent")

        handler = self._handlers.get(fn_name)
        if handler is None:
            raise ConductorError(f"Unknown zome function: {fn_name}")

        key = encode_hash(dna_hash)
        with self._transaction() as conn:
            enabled = conn.execute(
                select(loopback_cells.c.enabled).where(loopback_cells.c.dna_hash == key)
            ).scalar()
            if not enabled:
                raise ConductorError("Cell is missing or disabled")
            try:
                return handler(conn, key, payload)
            except (KeyError, TypeError) as exc:
                raise ConductorError(f"Malformed payload for {fn_name}: {exc}") from exc

    # ── Share items ──────────────────────────────────────────────────

    def _get_recent_shares(self, conn: Connection, dna_key: str, _payload: Any) -> list[dict[str, Any]]:
        rows = conn.execute(
            _originals(dna_key).order_by(loopback_shares.c.created_at.desc()).limit(RECENT_SHARES_LIMIT)
        ).fetchall()
        return [self._share_info(conn, row) for row in rows]

    def _get_shares_for_week(self, conn: Connection, dna_key: str, payload: dict[str, Any]) -> list[dict[str, Any]]:
        wanted = (int(payload["year"]), int(payload["week"]))
        rows = conn.execute(_originals(dna_key).order_by(loopback_shares.c.created_at.desc())).fetchall()
        return [self._share_info(conn, row) for row in rows if iso_week(row.created_at) == wanted]

    def _get_share_item(self, conn: Connection, dna_key: str, action_hash: bytes) -> dict[str, Any] | None:
        row = self._live_share(conn, dna_key, action_hash)
        return self._share_info(conn, row) if row is not None else None

    def _create_share_item(self, conn: Connection, dna_key: str, entry: dict[str, Any]) -> dict[str, Any]:
        return self._insert_share(conn, dna_key, entry)

    def _update_share_item(self, conn: Connection, dna_key: str, payload: dict[str, Any]) -> dict[str, Any]:
        original_hash = payload["original_share_item_hash"]
        original = self._live_share(conn, dna_key, original_hash)
        if original is None or original.action_hash != encode_hash(original_hash):
            raise ConductorError("Share item not found")
        previous = self._live_share(conn, dna_key, payload["previous_share_item_hash"])
        if previous is None or previous.action_hash != original.action_hash:
            raise ConductorError("Previous share item is not a revision of the original")
        return self._insert_share(
            conn, dna_key, payload["updated_share_item"], original_hash=original.action_hash
        )

    def _delete_share_item(self, conn: Connection, dna_key: str, action_hash: bytes) -> bytes:
        result = conn.execute(
            update(loopback_shares)
            .where(
                loopback_shares.c.dna_hash == dna_key,
                loopback_shares.c.action_hash == encode_hash(action_hash),
                loopback_shares.c.original_hash.is_(None),
                loopback_shares.c.deleted == 0,
            )
            .values(deleted=1)
        )
        if result.rowcount == 0:
            raise ConductorError("Share item not found")
        return action_hash

    def _insert_share(
        self,
        conn: Connection,
        dna_key: str,
        entry: dict[str, Any],
        *,
        original_hash: str | None = None,
    ) -> dict[str, Any]:
        if not entry.get("url") or not entry.get("title"):
            raise ConductorError("Share item needs a url and a title")

        created_at = _next_timestamp(conn, loopback_shares, dna_key)
        body = json.dumps(entry, sort_keys=True, separators=(",", ":"))
        action_hash = hashlib.sha256(
            f"{dna_key}:{created_at}:{body}".encode() + self.agent_key
        ).digest()

        conn.execute(
            insert(loopback_shares).values(
                action_hash=encode_hash(action_hash),
                dna_hash=dna_key,
                author=encode_hash(self.agent_key),
                entry=body,
                created_at=created_at,
                deleted=0,
                original_hash=original_hash,
            )
        )
        return {
            "action_hash": action_hash,
            "share_item": json.loads(body),
            "created_at": created_at,
            "author": self.agent_key,
        }

    def _live_share(self, conn: Connection, dna_key: str, action_hash: bytes) -> Any:
        """The undeleted original share addressed by *action_hash* or one of its revisions."""
        row = conn.execute(
            select(loopback_shares).where(
                loopback_shares.c.dna_hash == dna_key,
                loopback_shares.c.action_hash == encode_hash(action_hash),
            )
        ).first()
        if row is not None and row.original_hash is not None:
            row = conn.execute(
                select(loopback_shares).where(loopback_shares.c.action_hash == row.original_hash)
            ).first()
        if row is None or row.deleted:
            return None
        return row

    @staticmethod
    def _share_info(conn: Connection, row: Any) -> dict[str, Any]:
        # Content comes from the newest revision; identity and time from the original.
        latest = conn.execute(
            select(loopback_shares.c.entry)
            .where(loopback_shares.c.original_hash == row.action_hash)
            .order_by(loopback_shares.c.created_at.desc())
            .limit(1)
        ).scalar()
        return {
            "action_hash": decode_hash(row.action_hash),
            "share_item": json.loads(latest or row.entry),
            "created_at": row.created_at,
            "author": decode_hash(row.author),
        }

    # ── Feeds ────────────────────────────────────────────────────────

    def _create_feed(self, conn: Connection, dna_key: str, entry: dict[str, Any]) -> dict[str, Any]:
        if not entry.get("name"):
            raise ConductorError("Feed name cannot be empty")
        stewards = list(entry.get("stewards") or [])
        if not stewards:
            raise ConductorError("Feed must have at least one steward")

        created_at = _next_timestamp(conn, loopback_feeds, dna_key)
        body = json.dumps(
            {**entry, "stewards": [encode_hash(s) for s in stewards]},
            sort_keys=True,
            separators=(",", ":"),
        )
        action_hash = hashlib.sha256(
            f"feed:{dna_key}:{created_at}:{body}".encode() + self.agent_key
        ).digest()
        feed_key = encode_hash(action_hash)

        conn.execute(
            insert(loopback_feeds).values(
                action_hash=feed_key,
                dna_hash=dna_key,
                author=encode_hash(self.agent_key),
                entry=body,
                created_at=created_at,
                deleted=0,
            )
        )
        for steward in stewards:
            _link(conn, dna_key, LINK_FEED_MEMBER, feed_key, encode_hash(steward))
        return {"action_hash": action_hash, "feed": _feed_entry(body), "created_at": created_at}

    def _get_my_feeds(self, conn: Connection, dna_key: str, _payload: Any) -> list[dict[str, Any]]:
        rows = conn.execute(
            select(loopback_feeds)
            .where(
                loopback_feeds.c.dna_hash == dna_key,
                loopback_feeds.c.author == encode_hash(self.agent_key),
                loopback_feeds.c.deleted == 0,
            )
            .order_by(loopback_feeds.c.created_at)
        ).fetchall()
        return [
            {
                "action_hash": decode_hash(row.action_hash),
                "feed": _feed_entry(row.entry),
                "created_at": row.created_at,
            }
            for row in rows
        ]

    def _delete_feed(self, conn: Connection, dna_key: str, feed_hash: bytes) -> bytes:
        result = conn.execute(
            update(loopback_feeds)
            .where(
                loopback_feeds.c.dna_hash == dna_key,
                loopback_feeds.c.action_hash == encode_hash(feed_hash),
                loopback_feeds.c.deleted == 0,
            )
            .values(deleted=1)
        )
        if result.rowcount == 0:
            raise ConductorError("Feed not found")
        return feed_hash

    def _add_share_to_feed(self, conn: Connection, dna_key: str, payload: dict[str, Any]) -> None:
        feed_key = _live_feed(conn, dna_key, payload["feed_hash"])
        share_hash = payload["share_item_hash"]
        share = self._live_share(conn, dna_key, share_hash)
        if share is None or share.action_hash != encode_hash(share_hash):
            raise ConductorError("Linked action must reference a ShareItem entry")
        _link(conn, dna_key, LINK_FEED_SHARE, feed_key, share.action_hash)

    def _get_feed_shares(self, conn: Connection, dna_key: str, feed_hash: bytes) -> list[dict[str, Any]]:
        feed_key = _live_feed(conn, dna_key, feed_hash)
        infos: list[dict[str, Any]] = []
        for link in _links(conn, dna_key, LINK_FEED_SHARE, feed_key):
            row = self._live_share(conn, dna_key, decode_hash(link.target))
            if row is None:
                continue
            # Position in a feed is the time the share was added to it.
            infos.append({**self._share_info(conn, row), "created_at": link.created_at})
        infos.sort(key=lambda info: info["created_at"], reverse=True)
        return infos

    def _add_member_to_feed(self, conn: Connection, dna_key: str, payload: dict[str, Any]) -> None:
        feed_key = _live_feed(conn, dna_key, payload["feed_hash"])
        _link(conn, dna_key, LINK_FEED_MEMBER, feed_key, encode_hash(payload["member_pubkey"]))

    def _get_feed_members(self, conn: Connection, dna_key: str, feed_hash: bytes) -> list[bytes]:
        feed_key = _live_feed(conn, dna_key, feed_hash)
        return [decode_hash(link.target) for link in _links(conn, dna_key, LINK_FEED_MEMBER, feed_key)]


# ── Module helpers ───────────────────────────────────────────────────


def iso_week(created_at_us: int) -> tuple[int, int]:
    """ISO ``(year, week)`` of a microsecond timestamp, in UTC."""
    year, week, _day = datetime.fromtimestamp(created_at_us / 1_000_000, tz=UTC).isocalendar()
    return year, week


def _originals(dna_key: str) -> Select[Any]:
    return select(loopback_shares).where(
        loopback_shares.c.dna_hash == dna_key,
        loopback_shares.c.deleted == 0,
        loopback_shares.c.original_hash.is_(None),
    )


def _next_timestamp(conn: Connection, table: Table, dna_key: str) -> int:
    """Now, nudged past the newest row so ordering within a cell is strict."""
    latest = conn.execute(select(func.max(table.c.created_at)).where(table.c.dna_hash == dna_key)).scalar()
    return max(now_us(), (latest or 0) + 1)


def _feed_entry(body: str) -> dict[str, Any]:
    entry = json.loads(body)
    entry["stewards"] = [decode_hash(s) for s in entry.get("stewards") or []]
    return entry


def _live_feed(conn: Connection, dna_key: str, feed_hash: bytes) -> str:
    feed_key = encode_hash(feed_hash)
    exists = conn.execute(
        select(loopback_feeds.c.action_hash).where(
            loopback_feeds.c.dna_hash == dna_key,
            loopback_feeds.c.action_hash == feed_key,
            loopback_feeds.c.deleted == 0,
        )
    ).first()
    if exists is None:
        raise ConductorError("Feed not found")
    return feed_key


def _links(conn: Connection, dna_key: str, link_type: str, base: str) -> list[Any]:
    return list(
        conn.execute(
            select(loopback_links)
            .where(
                loopback_links.c.dna_hash == dna_key,
                loopback_links.c.link_type == link_type,
                loopback_links.c.base == base,
            )
            .order_by(loopback_links.c.id)
        ).fetchall()
    )


def _link(conn: Connection, dna_key: str, link_type: str, base: str, target: str) -> None:
    """Create a link once; repeating it is a no-op."""
    if any(link.target == target for link in _links(conn, dna_key, link_type, base)):
        return
    conn.execute(
        insert(loopback_links).values(
            dna_hash=dna_key,
            link_type=link_type,
            base=base,
            target=target,
            created_at=_next_timestamp(conn, loopback_links, dna_key),
        )
    )
