# src/sluice/core/registry.py
"""InstanceRegistry: per-run lookup of DataObjects and Actions by id.

The registry is an explicit object passed down to whoever needs it. It is
never a module-level singleton, so several pipelines (or tests) can run in
the same process without seeing each other's instances.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

import structlog

from sluice.contracts.errors import ConfigurationError
from sluice.contracts.types import ActionId, DataObjectId

if TYPE_CHECKING:
    from sluice.engine.actions.base import Action
    from sluice.plugins.protocols import DataObjectProtocol

logger = structlog.get_logger(__name__)


class InstanceRegistry:
    """Holds the DataObjects and Actions of one pipeline.

    Not locked: everything is registered while the pipeline is built,
    before the orchestrator starts worker threads, which only read.

    Example:
        registry = InstanceRegistry()
        registry.register_data_object(orders)
        with registry.scope():
            Orchestrator(actions, registry).run()
        # registry is empty again here
    """

    def __init__(self) -> None:
        self._data_objects: dict[DataObjectId, DataObjectProtocol] = {}
        self._actions: dict[ActionId, Action] = {}

    def register_data_object(self, data_object: DataObjectProtocol) -> DataObjectProtocol:
        if data_object.id in self._data_objects:
            raise ConfigurationError(f"DataObject '{data_object.id}' is already registered")
        self._data_objects[data_object.id] = data_object
        return data_object

    def register_action(self, action: Action) -> Action:
        if action.id in self._actions:
            raise ConfigurationError(f"Action '{action.id}' is already registered")
        self._actions[action.id] = action
        return action

    def get_data_object(self, data_object_id: str) -> DataObjectProtocol:
        try:
            return self._data_objects[DataObjectId(data_object_id)]
        except KeyError:
            known = ", ".join(sorted(self._data_objects)) or "<none>"
            raise ConfigurationError(f"DataObject '{data_object_id}' is not registered. Known DataObjects: {known}") from None

    def get_action(self, action_id: str) -> Action:
        try:
            return self._actions[ActionId(action_id)]
        except KeyError:
            known = ", ".join(sorted(self._actions)) or "<none>"
            raise ConfigurationError(f"Action '{action_id}' is not registered. Known Actions: {known}") from None

    def has_data_object(self, data_object_id: str) -> bool:
        return data_object_id in self._data_objects

    def data_objects(self) -> list[DataObjectProtocol]:
        return list(self._data_objects.values())

    def actions(self) -> list[Action]:
        return list(self._actions.values())

    def clear(self) -> None:
        logger.debug("registry_cleared", data_objects=len(self._data_objects), actions=len(self._actions))
        self._data_objects.clear()
        self._actions.clear()

    @contextmanager
    def scope(self) -> Iterator[InstanceRegistry]:
        """Teardown the registry when the block exits, even on error."""
        try:
            yield self
        finally:
            self.clear()
