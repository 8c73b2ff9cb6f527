"""Plugin discovery and loading.

Discovery: entry points in the ``sharectl.plugins`` group, plus single-file
plugins dropped into ``.sharectl/plugins/``.
"""

from __future__ import annotations

import importlib.util
import inspect
import logging
import sys
from typing import TYPE_CHECKING

import pluggy

from sharectl.plugins.hookspecs import SharectlHookSpec

if TYPE_CHECKING:
    from pathlib import Path

PROJECT_NAME = "sharectl"

logger = logging.getLogger(__name__)


class PluginManager:
    """Wraps a pluggy manager with sharectl's discovery rules."""

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(SharectlHookSpec)
        self._loaded = False

    def discover_and_load(self, *, local_dir: Path | None = None) -> list[str]:
        """Load entry-point plugins, then local single-file plugins.

        Returns the names of all registered plugins.
        """
        self._pm.load_setuptools_entrypoints(f"{PROJECT_NAME}.plugins")
        self._instantiate_registered_classes()
        if local_dir is not None:
            self._discover_local(local_dir)
        self._loaded = True
        return self.list_plugin_names()

    def register_plugin(self, plugin: object, name: str | None = None) -> None:
        resolved_name = name or plugin.__class__.__name__
        self._pm.register(plugin, name=resolved_name)
        logger.debug("Registered plugin: %s", resolved_name)

    def unregister(self, plugin: object) -> None:
        self._pm.unregister(plugin)

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def hook(self) -> pluggy.HookRelay:
        return self._pm.hook

    def list_plugin_names(self) -> list[str]:
        return [self._pm.get_name(p) or p.__class__.__name__ for p in self._pm.get_plugins()]

    # ------------------------------------------------------------------
    # Discovery helpers
    # ------------------------------------------------------------------

    def _discover_local(self, local_dir: Path) -> None:
        """Load every ``*.py`` in *local_dir* (skipping ``_``-prefixed files).

        A broken local plugin is logged and skipped; it never stops startup.
        """
        if not local_dir.is_dir():
            return

        for py_file in sorted(local_dir.glob("*.py")):
            if py_file.name.startswith("_"):
                continue
            module_name = f"sharectl_local_plugin_{py_file.stem}"
            try:
                spec = importlib.util.spec_from_file_location(module_name, py_file)
                if spec is None or spec.loader is None:
                    logger.warning("Could not create module spec for %s", py_file)
                    continue
                module = importlib.util.module_from_spec(spec)
                sys.modules[module_name] = module
                spec.loader.exec_module(module)
            except Exception:
                logger.warning("Failed to load local plugin %s", py_file, exc_info=True)
                sys.modules.pop(module_name, None)
                continue

            for _attr, obj in inspect.getmembers(module, inspect.isclass):
                if obj.__module__ != module_name or not self._has_hook_impls(obj):
                    continue
                try:
                    self.register_plugin(obj(), name=f"{module_name}.{obj.__name__}")
                except Exception:
                    logger.warning(
                        "Failed to instantiate plugin class %s from %s",
                        obj.__name__,
                        py_file,
                        exc_info=True,
                    )

    def _instantiate_registered_classes(self) -> None:
        """Entry points may register bare classes; swap them for instances."""
        for plugin in list(self._pm.get_plugins()):
            if not inspect.isclass(plugin) or not self._has_hook_impls(plugin):
                continue
            plugin_name = self._pm.get_name(plugin) or plugin.__name__
            self._pm.unregister(plugin)
            try:
                self._pm.register(plugin(), name=plugin_name)
            except Exception:
                logger.warning("Failed to instantiate entry-point plugin %s", plugin_name, exc_info=True)

    @staticmethod
    def _has_hook_impls(cls: type) -> bool:
        """Whether *cls* carries any ``@hookimpl`` methods (``sharectl_impl`` marker)."""
        for name in dir(cls):
            if name.startswith("_"):
                continue
            method = getattr(cls, name, None)
            if callable(method) and getattr(method, f"{PROJECT_NAME}_impl", None):
                return True
        return False
