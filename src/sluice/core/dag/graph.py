# src/sluice/core/dag/graph.py
"""ActionDAG: dependency graph of Actions.

An Action B depends on an Action A when one of A's output DataObject ids is
among B's input ids. Wraps a NetworkX DiGraph; each edge remembers which
DataObjects flow along it.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Generic, TypeVar, cast

import networkx as nx
from networkx import DiGraph

from sluice.contracts.errors import DagCycleError, DagValidationError
from sluice.contracts.types import ActionId, DataObjectId
from sluice.core.dag.models import DagNode, NodeInfo

N = TypeVar("N", bound=DagNode)


class ActionDAG(Generic[N]):
    """Validated, acyclic graph of Actions.

    Construction fails with DagCycleError if the declared inputs/outputs form
    a cycle, and with DagValidationError for duplicate Action ids or a
    DataObject written by more than one Action. Nothing is executed here.
    """

    def __init__(self, actions: Iterable[N]) -> None:
        self._graph: DiGraph[str] = nx.DiGraph()
        self._actions: dict[ActionId, N] = {}
        self._producers: dict[DataObjectId, ActionId] = {}

        for action in actions:
            if action.id in self._actions:
                raise DagValidationError(f"Duplicate action id '{action.id}'")
            self._actions[action.id] = action
            info = NodeInfo(action_id=action.id, inputs=tuple(action.input_ids), outputs=tuple(action.output_ids))
            self._graph.add_node(action.id, info=info, inputs=info.inputs, outputs=info.outputs)
            for output_id in action.output_ids:
                if output_id in self._producers:
                    raise DagValidationError(
                        f"DataObject '{output_id}' is written by both '{self._producers[output_id]}' and '{action.id}'"
                    )
                self._producers[output_id] = action.id

        for action in self._actions.values():
            for input_id in action.input_ids:
                producer = self._producers.get(input_id)
                if producer is None:
                    continue
                if self._graph.has_edge(producer, action.id):
                    self._graph.edges[producer, action.id]["data_objects"].append(input_id)
                else:
                    self._graph.add_edge(producer, action.id, data_objects=[input_id])

        self._check_acyclic()
        # Ties broken by action id so the order is stable across runs
        self._order: list[ActionId] = [ActionId(n) for n in nx.lexicographical_topological_sort(self._graph)]

    def _check_acyclic(self) -> None:
        if nx.is_directed_acyclic_graph(self._graph):
            return
        try:
            cycle = nx.find_cycle(self._graph)
        except nx.NetworkXNoCycle:  # pragma: no cover - is_directed_acyclic_graph said otherwise
            raise DagCycleError([]) from None
        nodes = [str(edge[0]) for edge in cycle]
        raise DagCycleError([*nodes, nodes[0]])

    @property
    def node_count(self) -> int:
        return self._graph.number_of_nodes()

    @property
    def edge_count(self) -> int:
        return self._graph.number_of_edges()

    def topological_order(self) -> list[ActionId]:
        """Action ids in execution order. Identical for every call."""
        return list(self._order)

    def actions_in_order(self) -> list[N]:
        return [self._actions[action_id] for action_id in self._order]

    def get_action(self, action_id: str) -> N:
        if action_id not in self._actions:
            raise KeyError(f"Action not found: {action_id}")
        return self._actions[ActionId(action_id)]

    def get_node_info(self, action_id: str) -> NodeInfo:
        if not self._graph.has_node(action_id):
            raise KeyError(f"Action not found: {action_id}")
        return cast(NodeInfo, self._graph.nodes[action_id]["info"])

    def predecessors(self, action_id: str) -> list[ActionId]:
        return sorted(ActionId(n) for n in self._graph.predecessors(action_id))

    def successors(self, action_id: str) -> list[ActionId]:
        return sorted(ActionId(n) for n in self._graph.successors(action_id))

    def descendants(self, action_id: str) -> set[ActionId]:
        return {ActionId(n) for n in nx.descendants(self._graph, action_id)}

    def producer_of(self, data_object_id: str) -> ActionId | None:
        return self._producers.get(DataObjectId(data_object_id))

    def start_inputs(self) -> list[DataObjectId]:
        """Input ids no Action produces; these get synthetic start feeds."""
        seen: dict[DataObjectId, None] = {}
        for action in self.actions_in_order():
            for input_id in action.input_ids:
                if input_id not in self._producers:
                    seen[input_id] = None
        return list(seen)

    def start_actions(self) -> list[ActionId]:
        return [action_id for action_id in self._order if self._graph.in_degree(action_id) == 0]

    def end_actions(self) -> list[ActionId]:
        return [action_id for action_id in self._order if self._graph.out_degree(action_id) == 0]

    def edge_data_objects(self, from_action: str, to_action: str) -> Sequence[DataObjectId]:
        return tuple(self._graph.edges[from_action, to_action]["data_objects"])
