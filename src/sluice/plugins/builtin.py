# src/sluice/plugins/builtin.py
"""Hook implementations registering the built-in plugin types."""

from typing import TYPE_CHECKING

from sluice.plugins.hookspecs import hookimpl

if TYPE_CHECKING:
    from sluice.engine.actions.base import Action
    from sluice.engine.modes import ExecutionMode
    from sluice.plugins.base import BaseDataObject


class BuiltinPlugins:
    """Registers memory/csv DataObjects, the built-in Actions and execution modes."""

    @hookimpl
    def sluice_get_data_objects(self) -> list[type["BaseDataObject"]]:
        from sluice.plugins.dataobjects.csv import CsvDataObject
        from sluice.plugins.dataobjects.memory import MemoryDataObject

        return [MemoryDataObject, CsvDataObject]

    @hookimpl
    def sluice_get_actions(self) -> list[type["Action"]]:
        from sluice.engine.actions.builtin import BUILTIN_ACTIONS

        return list(BUILTIN_ACTIONS)

    @hookimpl
    def sluice_get_execution_modes(self) -> list[type["ExecutionMode"]]:
        from sluice.engine.modes import BUILTIN_EXECUTION_MODES

        return list(BUILTIN_EXECUTION_MODES)
