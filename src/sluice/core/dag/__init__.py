# src/sluice/core/dag/__init__.py
"""DAG (Directed Acyclic Graph) of Actions, connected by DataObject ids."""

from sluice.contracts.errors import DagCycleError, DagValidationError
from sluice.core.dag.graph import ActionDAG
from sluice.core.dag.models import DagNode, NodeInfo

__all__ = [
    "ActionDAG",
    "DagCycleError",
    "DagNode",
    "DagValidationError",
    "NodeInfo",
]
