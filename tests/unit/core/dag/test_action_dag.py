# tests/unit/core/dag/test_action_dag.py
"""Tests for ActionDAG construction, ordering and navigation."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from sluice.contracts import ActionId, DagCycleError, DagValidationError, DataObjectId
from sluice.core.canonical import compute_topology_hash
from sluice.core.dag import ActionDAG


@dataclass(frozen=True)
class Node:
    id: ActionId
    input_ids: tuple[DataObjectId, ...]
    output_ids: tuple[DataObjectId, ...]


def node(action_id: str, inputs: list[str], outputs: list[str]) -> Node:
    return Node(ActionId(action_id), tuple(DataObjectId(i) for i in inputs), tuple(DataObjectId(o) for o in outputs))


class TestActionDagConstruction:
    def test_edges_follow_data_objects(self) -> None:
        dag = ActionDAG([node("a", ["src"], ["mid"]), node("b", ["mid"], ["tgt"])])
        assert dag.node_count == 2
        assert dag.edge_count == 1
        assert dag.predecessors("b") == ["a"]
        assert dag.successors("a") == ["b"]
        assert list(dag.edge_data_objects("a", "b")) == ["mid"]

    def test_shared_edge_collects_all_data_objects(self) -> None:
        dag = ActionDAG([node("a", ["src"], ["x", "y"]), node("b", ["x", "y"], ["tgt"])])
        assert dag.edge_count == 1
        assert list(dag.edge_data_objects("a", "b")) == ["x", "y"]

    def test_cycle_raises(self) -> None:
        with pytest.raises(DagCycleError) as exc_info:
            ActionDAG([node("A", ["x"], ["y"]), node("B", ["y"], ["x"])])
        cycle = exc_info.value.cycle
        assert set(cycle) == {"A", "B"}
        assert cycle[0] == cycle[-1]

    def test_duplicate_action_id_raises(self) -> None:
        with pytest.raises(DagValidationError, match="Duplicate action id"):
            ActionDAG([node("a", ["src"], ["x"]), node("a", ["src"], ["y"])])

    def test_two_producers_of_one_data_object_raise(self) -> None:
        with pytest.raises(DagValidationError, match="written by both"):
            ActionDAG([node("a", ["src"], ["x"]), node("b", ["src"], ["x"])])


class TestActionDagOrder:
    def test_order_is_topological_with_lexicographic_ties(self) -> None:
        dag = ActionDAG(
            [
                node("z_load", ["src"], ["stage"]),
                node("b_report", ["stage"], ["report"]),
                node("a_report", ["stage"], ["summary"]),
                node("c_other", ["other_src"], ["other"]),
            ]
        )
        assert dag.topological_order() == ["c_other", "z_load", "a_report", "b_report"]

    def test_order_independent_of_declaration_order(self) -> None:
        nodes = [node("a", ["src"], ["x"]), node("b", ["x"], ["y"]), node("c", ["src"], ["z"])]
        assert ActionDAG(nodes).topological_order() == ActionDAG(list(reversed(nodes))).topological_order()

    def test_start_inputs_and_actions(self) -> None:
        dag = ActionDAG([node("a", ["src1"], ["mid"]), node("b", ["mid", "src2"], ["tgt"])])
        assert dag.start_inputs() == ["src1", "src2"]
        assert dag.start_actions() == ["a"]
        assert dag.end_actions() == ["b"]
        assert dag.producer_of("mid") == "a"
        assert dag.producer_of("src1") is None

    def test_descendants(self) -> None:
        dag = ActionDAG([node("a", ["src"], ["x"]), node("b", ["x"], ["y"]), node("c", ["y"], ["z"]), node("d", ["src"], ["w"])])
        assert dag.descendants("a") == {"b", "c"}
        assert dag.descendants("d") == set()

    def test_unknown_action_raises_key_error(self) -> None:
        dag = ActionDAG([node("a", ["src"], ["x"])])
        with pytest.raises(KeyError):
            dag.get_action("missing")
        assert dag.get_node_info("a").outputs == ("x",)


class TestTopologyHash:
    def test_hash_is_stable_across_declaration_order(self) -> None:
        nodes = [node("a", ["src"], ["x"]), node("b", ["x"], ["y"])]
        assert compute_topology_hash(ActionDAG(nodes)) == compute_topology_hash(ActionDAG(list(reversed(nodes))))

    def test_hash_changes_with_shape(self) -> None:
        one = ActionDAG([node("a", ["src"], ["x"])])
        two = ActionDAG([node("a", ["src"], ["y"])])
        assert compute_topology_hash(one) != compute_topology_hash(two)
