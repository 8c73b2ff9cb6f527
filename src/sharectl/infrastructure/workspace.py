"""Workspace — the single dependency injected into the session.

Owns the database engine, the local key/value store, the lifecycle event
bus, and (once connected) the conductor connection. Mirrors one
``.sharectl/`` directory on disk.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sharectl.infrastructure.database.engine import init_database
from sharectl.infrastructure.store import LocalStore, NetworkStore

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.engine import Engine

    from sharectl.config.settings import SharectlSettings
    from sharectl.infrastructure.connection import Connection
    from sharectl.plugins.event_bus import EventBus

logger = logging.getLogger(__name__)


class Workspace:
    """Local persistence plus the optional conductor connection."""

    def __init__(self, settings: SharectlSettings) -> None:
        self._settings = settings
        self._engine = init_database(settings.storage_dir, settings.storage.db_name)
        self._store = LocalStore(self._engine)
        self._networks = NetworkStore(self._store)
        self._event_bus: EventBus | None = None
        self._connection: Connection | None = None

    # ── Accessors ────────────────────────────────────────────────────

    @property
    def settings(self) -> SharectlSettings:
        return self._settings

    @property
    def root(self) -> Path:
        return self._settings.data_root

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def store(self) -> LocalStore:
        return self._store

    @property
    def networks(self) -> NetworkStore:
        return self._networks

    @property
    def event_bus(self) -> EventBus | None:
        return self._event_bus

    @property
    def connection(self) -> Connection | None:
        return self._connection

    # ── Lifecycle ────────────────────────────────────────────────────

    def init_event_bus(self, *, sync: bool = False) -> EventBus:
        """Load plugins and start the lifecycle event bus."""
        from sharectl.plugins.event_bus import EventBus
        from sharectl.plugins.manager import PluginManager

        pm = PluginManager()
        if self._settings.plugins.enabled:
            pm.discover_and_load(local_dir=self._settings.storage_dir / "plugins")
        self._event_bus = EventBus(self._engine, pm, sync=sync)
        return self._event_bus

    def connect(self) -> Connection:
        """Connect to the configured conductor and attach the connection."""
        from sharectl.infrastructure.connection import connect

        return self.attach(connect(self._settings, engine=self._engine, store=self._store))

    def attach(self, connection: Connection) -> Connection:
        self._connection = connection
        return connection

    def disconnect(self) -> None:
        self._connection = None

    def close(self) -> None:
        """Retry outstanding lifecycle events, then release the database."""
        if self._event_bus is not None:
            self._event_bus.drain()
            self._event_bus.shutdown()
            self._event_bus = None
        self._connection = None
        self._engine.dispose()
