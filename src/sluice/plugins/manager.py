# src/sluice/plugins/manager.py
"""Plugin manager for discovery, registration, and lookup.

Uses pluggy for hook-based plugin registration.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import pluggy

from sluice.contracts import ConfigurationError
from sluice.plugins.hookspecs import PROJECT_NAME, SluiceActionSpec, SluiceDataObjectSpec

if TYPE_CHECKING:
    from sluice.engine.actions.base import Action
    from sluice.engine.modes import ExecutionMode
    from sluice.plugins.base import BaseDataObject


@dataclass(frozen=True)
class PluginSpec:
    """Registration record of a plugin type, as listed by ``sluice plugins``."""

    name: str
    kind: str
    class_path: str
    description: str

    @classmethod
    def from_plugin(cls, plugin_cls: type, kind: str) -> PluginSpec:
        doc = (plugin_cls.__doc__ or "").strip()
        return cls(
            name=plugin_cls.name,  # type: ignore[attr-defined]
            kind=kind,
            class_path=f"{plugin_cls.__module__}.{plugin_cls.__qualname__}",
            description=doc.splitlines()[0] if doc else "",
        )


def _collect[T](results: list[list[type[T]]], kind: str) -> dict[str, type[T]]:
    collected: dict[str, type[T]] = {}
    for classes in results:
        for cls in classes:
            name = getattr(cls, "name", "")
            if not name:
                raise ValueError(f"{kind} plugin {cls.__name__} has no name")
            if name in collected:
                raise ValueError(f"Duplicate {kind} plugin name: '{name}'. Already registered by {collected[name].__name__}")
            collected[name] = cls
    return collected


class PluginManager:
    """Manages plugin discovery, registration, and lookup.

    Usage:
        manager = PluginManager()
        manager.register_builtin_plugins()
        manager.register(MyPlugin())

        csv_cls = manager.get_data_object_by_name("csv")
    """

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(SluiceDataObjectSpec)
        self._pm.add_hookspecs(SluiceActionSpec)

        self._data_objects: dict[str, type[BaseDataObject]] = {}
        self._actions: dict[str, type[Action]] = {}
        self._execution_modes: dict[str, type[ExecutionMode]] = {}

    def register_builtin_plugins(self) -> None:
        """Register the DataObjects, Actions and execution modes shipped with sluice."""
        from sluice.plugins.builtin import BuiltinPlugins

        self.register(BuiltinPlugins())

    def load_entrypoint_plugins(self) -> int:
        """Register plugins published under the ``sluice`` entry point group.

        Returns:
            Number of plugins loaded
        """
        count = self._pm.load_setuptools_entrypoints(PROJECT_NAME)
        self._refresh_caches()
        return count

    def register(self, plugin: Any) -> None:
        """Register a plugin.

        Args:
            plugin: Plugin instance implementing hook methods

        Raises:
            ValueError: If a plugin type with the same name and kind is already registered
        """
        self._pm.register(plugin)
        try:
            self._refresh_caches()
        except ValueError:
            self._pm.unregister(plugin)
            raise

    def _refresh_caches(self) -> None:
        # Collect everything first so a duplicate leaves the caches untouched
        data_objects = _collect(self._pm.hook.sluice_get_data_objects(), "data object")
        actions = _collect(self._pm.hook.sluice_get_actions(), "action")
        execution_modes = _collect(self._pm.hook.sluice_get_execution_modes(), "execution mode")

        self._data_objects = data_objects
        self._actions = actions
        self._execution_modes = execution_modes

    # === Getters ===

    def get_data_objects(self) -> list[type[BaseDataObject]]:
        return list(self._data_objects.values())

    def get_actions(self) -> list[type[Action]]:
        return list(self._actions.values())

    def get_execution_modes(self) -> list[type[ExecutionMode]]:
        return list(self._execution_modes.values())

    def plugin_specs(self) -> list[PluginSpec]:
        """All registered plugin types, sorted by kind and name."""
        specs = [
            *(PluginSpec.from_plugin(c, "data_object") for c in self._data_objects.values()),
            *(PluginSpec.from_plugin(c, "action") for c in self._actions.values()),
            *(PluginSpec.from_plugin(c, "execution_mode") for c in self._execution_modes.values()),
        ]
        return sorted(specs, key=lambda s: (s.kind, s.name))

    # === Lookup by name ===

    def get_data_object_by_name(self, name: str) -> type[BaseDataObject]:
        """Get DataObject class by type name.

        Raises:
            ConfigurationError: If no DataObject type of that name is registered
        """
        return self._lookup(self._data_objects, name, "data object")

    def get_action_by_name(self, name: str) -> type[Action]:
        """Get Action class by type name.

        Raises:
            ConfigurationError: If no Action type of that name is registered
        """
        return self._lookup(self._actions, name, "action")

    def get_execution_mode_by_name(self, name: str) -> type[ExecutionMode]:
        """Get ExecutionMode class by type name.

        Raises:
            ConfigurationError: If no execution mode of that name is registered
        """
        return self._lookup(self._execution_modes, name, "execution mode")

    @staticmethod
    def _lookup[T](registry: dict[str, type[T]], name: str, kind: str) -> type[T]:
        try:
            return registry[name]
        except KeyError:
            available = ", ".join(sorted(registry)) or "<none>"
            raise ConfigurationError(f"Unknown {kind} type '{name}'. Available: {available}") from None
