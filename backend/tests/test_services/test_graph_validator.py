"""Tests for the graph_validator service."""

import pytest

from collectflow.errors import CycleDetectedError, WorkflowValidationError
from collectflow.services.graph_validator import (
    build_adjacency,
    derive_dependencies,
    find_cycle,
    validate_workflow_version,
)


def _node(node_id, inputs=(), outputs=(), **extra):
    return {
        "id": node_id,
        "type": "PROMPT",
        "input_collections": list(inputs),
        "output_collections": list(outputs),
        **extra,
    }


def _version(*nodes):
    return {"workflow_id": "wf", "version_id": "v1", "nodes": list(nodes)}


class TestDeriveDependencies:
    """Tests for deriving node edges from shared collections."""

    def test_single_edge(self):
        edges = derive_dependencies([_node("A", outputs=["x"]), _node("B", inputs=["x"])])
        assert [(e.from_node, e.to_node, e.collection) for e in edges] == [("A", "B", "x")]

    def test_no_shared_collection(self):
        assert derive_dependencies([_node("A", outputs=["x"]), _node("B", inputs=["y"])]) == []

    def test_multiple_producers(self):
        nodes = [_node("A", outputs=["x"]), _node("B", outputs=["x"]), _node("C", inputs=["x"])]
        edges = derive_dependencies(nodes)
        assert {(e.from_node, e.to_node) for e in edges} == {("A", "C"), ("B", "C")}

    def test_self_read_is_not_an_edge(self):
        assert derive_dependencies([_node("A", inputs=["x"], outputs=["x"])]) == []

    def test_edge_serializes_with_from_to(self):
        edge = derive_dependencies([_node("A", outputs=["x"]), _node("B", inputs=["x"])])[0]
        assert edge.model_dump(by_alias=True) == {"from": "A", "to": "B", "collection": "x"}


class TestFindCycle:
    """Tests for cycle detection."""

    def test_acyclic(self):
        adjacency = {"A": ["B"], "B": ["C"], "C": []}
        assert find_cycle(["A", "B", "C"], adjacency) is None

    def test_two_node_cycle(self):
        cycle = find_cycle(["A", "B"], {"A": ["B"], "B": ["A"]})
        assert cycle is not None
        assert cycle[0] == cycle[-1]
        assert set(cycle) == {"A", "B"}

    def test_diamond_is_not_a_cycle(self):
        adjacency = {"A": ["B", "C"], "B": ["D"], "C": ["D"], "D": []}
        assert find_cycle(list(adjacency), adjacency) is None

    def test_cycle_reached_from_later_start(self):
        adjacency = {"A": [], "B": ["C"], "C": ["B"]}
        cycle = find_cycle(["A", "B", "C"], adjacency)
        assert cycle == ["B", "C", "B"]

    def test_long_chain(self):
        ids = [f"n{i}" for i in range(2000)]
        adjacency = {ids[i]: [ids[i + 1]] for i in range(len(ids) - 1)}
        adjacency[ids[-1]] = []
        assert find_cycle(ids, adjacency) is None

    def test_build_adjacency_dedupes(self):
        edges = derive_dependencies(
            [_node("A", outputs=["x", "y"]), _node("B", inputs=["x", "y"])]
        )
        assert build_adjacency(["A", "B"], edges) == {"A": ["B"], "B": []}


class TestValidateWorkflowVersion:
    """Tests for whole-version validation."""

    def test_valid_version_returns_edges(self):
        edges = validate_workflow_version(
            _version(_node("A", outputs=["x"]), _node("B", inputs=["x"], outputs=["y"]))
        )
        assert len(edges) == 1

    def test_empty_nodes_is_valid(self):
        assert validate_workflow_version(_version()) == []

    def test_cycle_names_a_node_on_the_cycle(self):
        document = _version(
            _node("A", inputs=["y"], outputs=["x"]),
            _node("B", inputs=["x"], outputs=["y"]),
            _node("C", inputs=["x"]),
        )
        with pytest.raises(CycleDetectedError) as exc_info:
            validate_workflow_version(document)
        assert exc_info.value.node_id in {"A", "B"}
        assert exc_info.value.details["cycle"][0] == exc_info.value.details["cycle"][-1]

    def test_duplicate_node_id(self):
        with pytest.raises(WorkflowValidationError, match="Duplicate node id: A"):
            validate_workflow_version(_version(_node("A"), _node("A")))

    def test_missing_node_id(self):
        node = _node("A")
        del node["id"]
        with pytest.raises(WorkflowValidationError, match=r"nodes\[0\]\.id"):
            validate_workflow_version(_version(node))

    def test_unknown_node_type(self):
        with pytest.raises(WorkflowValidationError, match=r"nodes\[0\]\.type"):
            validate_workflow_version(_version(_node("A", type="SCRIPT")))

    def test_collections_must_be_arrays(self):
        node = _node("A")
        node["input_collections"] = "x"
        with pytest.raises(WorkflowValidationError, match="must be an array"):
            validate_workflow_version(_version(node))

    def test_empty_collection_name(self):
        with pytest.raises(WorkflowValidationError, match=r"output_collections\[0\]"):
            validate_workflow_version(_version(_node("A", outputs=[""])))

    @pytest.mark.parametrize("minimum_rows", [0, -1, 1.5, True, "3"])
    def test_invalid_minimum_rows(self, minimum_rows):
        with pytest.raises(WorkflowValidationError, match="minimum_rows"):
            validate_workflow_version(_version(_node("A", minimum_rows=minimum_rows)))

    def test_missing_version_id(self):
        with pytest.raises(WorkflowValidationError, match="version_id"):
            validate_workflow_version({"workflow_id": "wf", "nodes": []})

    def test_not_an_object(self):
        with pytest.raises(WorkflowValidationError):
            validate_workflow_version(["not", "a", "workflow"])
