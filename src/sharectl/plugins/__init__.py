"""Extension layer — lifecycle hooks via pluggy.

INVARIANT: Plugin failures are warnings, never errors.
"""

from sharectl.plugins.event_bus import EventBus
from sharectl.plugins.hookspecs import hookimpl
from sharectl.plugins.manager import PluginManager

__all__ = ["EventBus", "PluginManager", "hookimpl"]
