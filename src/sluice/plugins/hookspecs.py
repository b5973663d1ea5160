# src/sluice/plugins/hookspecs.py
"""pluggy hook specifications for sluice plugins.

Plugins implement these hooks to register DataObject, Action and
execution mode types with the framework. Configuration refers to a type
by its ``name`` class attribute.

Usage (implementing a plugin):
    from sluice.plugins.hookspecs import hookimpl

    class MyPlugin:
        @hookimpl  # NOT @hookspec - that's for defining specs
        def sluice_get_data_objects(self):
            return [ParquetDataObject]

Note: @hookspec defines the hook interface (done here).
      @hookimpl marks plugin implementations of those hooks.
"""

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from sluice.engine.actions.base import Action
    from sluice.engine.modes import ExecutionMode
    from sluice.plugins.base import BaseDataObject

# Project name for pluggy
PROJECT_NAME = "sluice"

hookspec = pluggy.HookspecMarker(PROJECT_NAME)

hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class SluiceDataObjectSpec:
    """Hook specifications for DataObject plugins."""

    @hookspec
    def sluice_get_data_objects(self) -> list[type["BaseDataObject"]]:  # type: ignore[empty-body]
        """Return DataObject classes (not instances)."""


class SluiceActionSpec:
    """Hook specifications for Action and execution mode plugins."""

    @hookspec
    def sluice_get_actions(self) -> list[type["Action"]]:  # type: ignore[empty-body]
        """Return Action classes."""

    @hookspec
    def sluice_get_execution_modes(self) -> list[type["ExecutionMode"]]:  # type: ignore[empty-body]
        """Return ExecutionMode classes."""
