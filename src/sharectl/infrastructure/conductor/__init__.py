"""Conductor boundary — protocols, the feed client, and the loopback backend."""

from sharectl.infrastructure.conductor.base import (
    ConductorError,
    DataClient,
    MaterializedCell,
    RemoteAuthority,
    ReportedCell,
    ZomeTransport,
)
from sharectl.infrastructure.conductor.client import FeedClient

__all__ = [
    "ConductorError",
    "DataClient",
    "FeedClient",
    "MaterializedCell",
    "RemoteAuthority",
    "ReportedCell",
    "ZomeTransport",
]
