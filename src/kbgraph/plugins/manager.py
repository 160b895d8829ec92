"""Plugin discovery and loading.

Two sources, both optional:
- installed distributions advertising the ``kbgraph.plugins`` entry-point group
- single-file plugins in ``{data_root}/.kbgraph/plugins/*.py``

Anything that fails to import, instantiate or validate against the hook
specs is logged and skipped; a bad plugin never stops the store from opening.
"""

from __future__ import annotations

import importlib.util
import inspect
import logging
import sys
from typing import TYPE_CHECKING

import pluggy

from kbgraph.plugins.hookspecs import KbgraphHookSpec

if TYPE_CHECKING:
    from pathlib import Path
    from types import ModuleType

PROJECT_NAME = "kbgraph"
ENTRY_POINT_GROUP = "kbgraph.plugins"
LOCAL_MODULE_PREFIX = "kbgraph_local_plugin_"

logger = logging.getLogger(__name__)


class PluginManager:
    """Thin wrapper over :class:`pluggy.PluginManager` with kbgraph discovery rules."""

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(KbgraphHookSpec)
        self._loaded = False

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def hook(self) -> pluggy.HookRelay:
        return self._pm.hook

    def discover_and_load(self, *, local_dir: Path | None = None) -> list[str]:
        """Load entry-point plugins, then local single-file plugins from *local_dir*.

        Returns the names of every registered plugin afterwards.
        """
        count = self._pm.load_setuptools_entrypoints(ENTRY_POINT_GROUP)
        if count:
            logger.debug("Loaded %d entry-point plugin(s)", count)
        self._instantiate_class_plugins()
        if local_dir is not None and local_dir.is_dir():
            for py_file in sorted(local_dir.glob("*.py")):
                if not py_file.name.startswith("_"):
                    self._load_local(py_file)
        self._loaded = True
        return self.list_plugin_names()

    def register_plugin(self, plugin: object, name: str | None = None) -> None:
        """Register *plugin* under *name* (default: its class name)."""
        resolved = name or type(plugin).__name__
        self._pm.register(plugin, name=resolved)
        logger.debug("Registered plugin %s", resolved)

    def list_plugin_names(self) -> list[str]:
        return [self._pm.get_name(p) or type(p).__name__ for p in self._pm.get_plugins()]

    # ------------------------------------------------------------------
    # Discovery helpers
    # ------------------------------------------------------------------

    def _load_local(self, py_file: Path) -> None:
        module_name = f"{LOCAL_MODULE_PREFIX}{py_file.stem}"
        module = self._import_file(module_name, py_file)
        if module is None:
            return

        classes = [
            obj
            for _, obj in inspect.getmembers(module, inspect.isclass)
            if obj.__module__ == module_name and self._has_hook_impls(obj)
        ]
        for cls in classes:
            # One hook class per file is the norm; extra classes get a qualified name.
            name = module_name if len(classes) == 1 else f"{module_name}.{cls.__name__}"
            try:
                self.register_plugin(cls(), name=name)
            except Exception:
                self._discard(name)
                logger.warning("Rejected plugin %s from %s", cls.__name__, py_file, exc_info=True)

    @staticmethod
    def _import_file(module_name: str, py_file: Path) -> ModuleType | None:
        spec = importlib.util.spec_from_file_location(module_name, py_file)
        if spec is None or spec.loader is None:
            logger.warning("Cannot import plugin file %s", py_file)
            return None
        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception:
            logger.warning("Failed to load local plugin %s", py_file, exc_info=True)
            sys.modules.pop(module_name, None)
            return None
        return module

    def _instantiate_class_plugins(self) -> None:
        """Swap entry points that name a class for an instance of that class.

        Hooks bound to the class object itself would be called without ``self``.
        """
        for plugin in list(self._pm.get_plugins()):
            if not inspect.isclass(plugin) or not self._has_hook_impls(plugin):
                continue
            name = self._pm.get_name(plugin) or plugin.__name__
            self._pm.unregister(plugin)
            try:
                self._pm.register(plugin(), name=name)
            except Exception:
                self._discard(name)
                logger.warning("Rejected entry-point plugin %s", name, exc_info=True)

    def _discard(self, name: str) -> None:
        """Drop whatever a failed registration left behind under *name*.

        pluggy attaches hook implementations one by one, so a plugin
        rejected on a later hook keeps its earlier ones unless removed.
        """
        if self._pm.has_plugin(name):
            self._pm.unregister(name=name)

    @staticmethod
    def _has_hook_impls(cls: type) -> bool:
        """True if any public attribute of *cls* carries the ``kbgraph_impl`` marker."""
        marker = f"{PROJECT_NAME}_impl"
        return any(
            callable(attr) and getattr(attr, marker, None)
            for attr in (getattr(cls, n, None) for n in dir(cls) if not n.startswith("_"))
        )
