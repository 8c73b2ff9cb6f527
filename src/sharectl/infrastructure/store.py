"""Durable local key/value store and the network metadata kept in it.

Two keys matter to the session:

- ``sharefeed_networks``: ordered list of :class:`NetworkRecord` documents
- ``sharefeed_active_network``: the last selected network ID

The store mirrors display metadata only. Whether a network exists is
always decided by the conductor.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, select
from sqlalchemy.dialects.sqlite import insert

from sharectl.domain.types import NetworkRecord
from sharectl.infrastructure.database.schema import kv_store
from sharectl.services._helpers import now_iso

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

NETWORKS_KEY = "sharefeed_networks"
ACTIVE_NETWORK_KEY = "sharefeed_active_network"


class LocalStore:
    """JSON values addressed by string keys, persisted in ``kv_store``."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def get(self, key: str, default: Any = None) -> Any:
        with self._engine.connect() as conn:
            raw = conn.execute(select(kv_store.c.value).where(kv_store.c.key == key)).scalar()
        if raw is None:
            return default
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        encoded = json.dumps(value, separators=(",", ":"))
        stamp = now_iso()
        stmt = insert(kv_store).values(key=key, value=encoded, updated=stamp)
        stmt = stmt.on_conflict_do_update(
            index_elements=[kv_store.c.key],
            set_={"value": encoded, "updated": stamp},
        )
        with self._engine.begin() as conn:
            conn.execute(stmt)

    def delete(self, key: str) -> None:
        with self._engine.begin() as conn:
            conn.execute(delete(kv_store).where(kv_store.c.key == key))

    def keys(self) -> list[str]:
        with self._engine.connect() as conn:
            return list(conn.execute(select(kv_store.c.key).order_by(kv_store.c.key)).scalars())


class NetworkStore:
    """Network records and the active-network pointer on top of a LocalStore."""

    def __init__(self, store: LocalStore) -> None:
        self._store = store

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def load(self) -> list[NetworkRecord]:
        """All persisted records, in insertion order.

        Corrupt data is logged and treated as empty rather than raised:
        the conductor still knows which networks exist.
        """
        try:
            raw = self._store.get(NETWORKS_KEY, [])
            return [NetworkRecord.model_validate(item) for item in raw]
        except (json.JSONDecodeError, TypeError, PydanticValidationError):
            logger.error("Failed to load networks from local store", exc_info=True)
            return []

    def get(self, network_id: str) -> NetworkRecord | None:
        return next((r for r in self.load() if r.id == network_id), None)

    def save(self, record: NetworkRecord) -> None:
        """Insert *record*, or replace the record with the same ID in place."""
        records = self.load()
        for i, existing in enumerate(records):
            if existing.id == record.id:
                records[i] = record
                break
        else:
            records.append(record)
        self._write(records)

    def remove(self, network_id: str) -> bool:
        records = self.load()
        kept = [r for r in records if r.id != network_id]
        if len(kept) == len(records):
            return False
        self._write(kept)
        return True

    def retain(self, network_ids: set[str]) -> list[str]:
        """Drop every record whose ID is not in *network_ids*. Returns dropped IDs."""
        records = self.load()
        dropped = [r.id for r in records if r.id not in network_ids]
        if dropped:
            self._write([r for r in records if r.id in network_ids])
        return dropped

    def update_name(self, network_id: str, name: str) -> bool:
        """Rename a stored record. Returns False when no record exists."""
        record = self.get(network_id)
        if record is None:
            return False
        self.save(record.model_copy(update={"name": name}))
        return True

    def _write(self, records: list[NetworkRecord]) -> None:
        self._store.set(NETWORKS_KEY, [r.model_dump(mode="json") for r in records])

    # ------------------------------------------------------------------
    # Active network pointer
    # ------------------------------------------------------------------

    def get_active_id(self) -> str | None:
        value = self._store.get(ACTIVE_NETWORK_KEY)
        return value or None

    def set_active_id(self, network_id: str) -> None:
        self._store.set(ACTIVE_NETWORK_KEY, network_id)

    def clear_active_id(self) -> None:
        self._store.delete(ACTIVE_NETWORK_KEY)
