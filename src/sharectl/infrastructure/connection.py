"""Conductor connection management.

A :class:`Connection` bundles the partition authority with the feed client
that talks to the same backend. The session treats "no connection" as a
normal state: its operations become no-ops until one is attached.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sharectl.infrastructure.conductor.base import ConductorError
from sharectl.infrastructure.conductor.client import FeedClient

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from sharectl.config.settings import SharectlSettings
    from sharectl.infrastructure.conductor.base import RemoteAuthority
    from sharectl.infrastructure.store import LocalStore

logger = logging.getLogger(__name__)


@dataclass
class Connection:
    """Live link to a conductor."""

    authority: RemoteAuthority
    client: FeedClient
    app_id: str = "sharefeed"


def connect(settings: SharectlSettings, *, engine: Engine, store: LocalStore) -> Connection:
    """Open a connection using the configured conductor backend.

    Raises:
        ConductorError: If the backend is unknown or cannot be reached.
    """
    cfg = settings.conductor
    if cfg.backend == "loopback":
        from sharectl.infrastructure.conductor.loopback import LoopbackConductor

        conductor = LoopbackConductor(engine, store)
        logger.debug("Connected to loopback conductor (app %s)", cfg.app_id)
        return Connection(
            authority=conductor,
            client=FeedClient(conductor, role_name=cfg.role_name),
            app_id=cfg.app_id,
        )

    msg = f"Unknown conductor backend: {cfg.backend!r}"
    raise ConductorError(msg)
