# src/sluice/core/dag/models.py
"""Types for DAG operations.

Leaf module: no intra-package imports beyond contracts.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from sluice.contracts.types import ActionId, DataObjectId


class DagNode(Protocol):
    """What the graph needs to know about an Action."""

    @property
    def id(self) -> ActionId: ...

    @property
    def input_ids(self) -> Sequence[DataObjectId]: ...

    @property
    def output_ids(self) -> Sequence[DataObjectId]: ...


@dataclass(frozen=True, slots=True)
class NodeInfo:
    """Information about a node in the Action graph."""

    action_id: ActionId
    inputs: tuple[DataObjectId, ...]
    outputs: tuple[DataObjectId, ...]
