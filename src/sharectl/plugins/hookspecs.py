"""Pluggy hook specifications for network lifecycle events.

Dispatched through the WAL-backed :class:`~sharectl.plugins.event_bus.EventBus`
after the session has committed the corresponding state change.
"""

from __future__ import annotations

import pluggy

hookspec = pluggy.HookspecMarker("sharectl")
hookimpl = pluggy.HookimplMarker("sharectl")


class SharectlHookSpec:
    """Hook specifications for the sharectl plugin system."""

    @hookspec
    def post_network_create(self, network_id: str, name: str) -> None:
        """Called after a new network has been created and recorded."""

    @hookspec
    def post_network_join(self, network_id: str, name: str) -> None:
        """Called after joining an existing network by passphrase."""

    @hookspec
    def post_network_leave(self, network_id: str, active_id: str | None) -> None:
        """Called after a network is disabled; *active_id* is the new selection."""

    @hookspec
    def post_network_enable(self, network_id: str) -> None:
        """Called after a disabled network has been re-enabled."""

    @hookspec
    def post_network_switch(self, previous_id: str | None, network_id: str) -> None:
        """Called after the active network changes."""

    @hookspec
    def post_network_rename(self, network_id: str, name: str) -> None:
        """Called after a network's local display name changes."""
