"""GraphValidator - structural and dataflow checks for workflow versions.

Nodes never reference each other directly. A node depends on another when it
reads a collection the other writes, so the dependency graph is derived from
the collections each node declares and must be acyclic.
"""

from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from collectflow.errors import CycleDetectedError, WorkflowValidationError
from collectflow.models.workflow import DependencyEdge, NodeType, WorkflowVersionRecord

ALLOWED_NODE_TYPES = frozenset(t.value for t in NodeType)


def _is_non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and value != ""


def _check_collection_list(node: Mapping[str, Any], index: int, key: str) -> None:
    value = node.get(key)
    if not isinstance(value, list):
        raise WorkflowValidationError(f"nodes[{index}].{key} must be an array")
    for position, kind in enumerate(value):
        if not _is_non_empty_string(kind):
            raise WorkflowValidationError(
                f"nodes[{index}].{key}[{position}] must be a non-empty string"
            )


def check_structure(document: Any) -> None:
    """Raise WorkflowValidationError on the first structural problem."""
    if not isinstance(document, Mapping):
        raise WorkflowValidationError("Workflow version must be a JSON object")
    if not _is_non_empty_string(document.get("workflow_id")):
        raise WorkflowValidationError("workflow_id is required and must be a non-empty string")
    if not _is_non_empty_string(document.get("version_id")):
        raise WorkflowValidationError("version_id is required and must be a non-empty string")

    nodes = document.get("nodes")
    if not isinstance(nodes, list):
        raise WorkflowValidationError("nodes must be an array")

    seen: set[str] = set()
    for index, node in enumerate(nodes):
        if not isinstance(node, Mapping):
            raise WorkflowValidationError(f"nodes[{index}] must be an object")
        node_id = node.get("id")
        if not _is_non_empty_string(node_id):
            raise WorkflowValidationError(
                f"nodes[{index}].id is required and must be a non-empty string"
            )
        if node_id in seen:
            raise WorkflowValidationError(f"Duplicate node id: {node_id}")
        seen.add(node_id)

        if node.get("type") not in ALLOWED_NODE_TYPES:
            allowed = ", ".join(sorted(ALLOWED_NODE_TYPES))
            raise WorkflowValidationError(f"nodes[{index}].type must be one of: {allowed}")

        _check_collection_list(node, index, "input_collections")
        _check_collection_list(node, index, "output_collections")

        minimum_rows = node.get("minimum_rows")
        if minimum_rows is not None:
            # bool is an int subclass but not a row count
            is_int = isinstance(minimum_rows, int) and not isinstance(minimum_rows, bool)
            if not is_int or minimum_rows < 1:
                raise WorkflowValidationError(
                    f"nodes[{index}].minimum_rows must be a positive integer"
                )


def derive_dependencies(nodes: Iterable[Mapping[str, Any]]) -> list[DependencyEdge]:
    """Producer -> consumer edges for every collection shared between two nodes."""
    nodes = list(nodes)
    producers: dict[str, list[str]] = {}
    for node in nodes:
        for kind in node.get("output_collections", []):
            producers.setdefault(kind, []).append(node["id"])

    edges: list[DependencyEdge] = []
    seen: set[tuple[str, str, str]] = set()
    for consumer in nodes:
        for kind in consumer.get("input_collections", []):
            for producer_id in producers.get(kind, []):
                key = (producer_id, consumer["id"], kind)
                if producer_id == consumer["id"] or key in seen:
                    continue
                seen.add(key)
                edges.append(
                    DependencyEdge(from_node=producer_id, to_node=consumer["id"], collection=kind)
                )
    return edges


def build_adjacency(node_ids: list[str], edges: list[DependencyEdge]) -> dict[str, list[str]]:
    adjacency: dict[str, list[str]] = {node_id: [] for node_id in node_ids}
    for edge in edges:
        targets = adjacency.setdefault(edge.from_node, [])
        if edge.to_node not in targets:
            targets.append(edge.to_node)
    return adjacency


def find_cycle(node_ids: list[str], adjacency: Mapping[str, list[str]]) -> list[str] | None:
    """Return the first cycle found as a node path (first == last), or None.

    Iterative depth-first search: ``on_stack`` marks the current path,
    ``visited`` marks nodes whose descendants are fully explored.
    """
    visited: set[str] = set()
    for start in node_ids:
        if start in visited:
            continue
        path = [start]
        on_stack = {start}
        stack = [iter(adjacency.get(start, ()))]
        while stack:
            child = next(stack[-1], None)
            if child is None:
                stack.pop()
                finished = path.pop()
                on_stack.discard(finished)
                visited.add(finished)
                continue
            if child in on_stack:
                return path[path.index(child):] + [child]
            if child in visited:
                continue
            path.append(child)
            on_stack.add(child)
            stack.append(iter(adjacency.get(child, ())))
    return None


def validate_workflow_version(document: Any) -> list[DependencyEdge]:
    """Validate a version document and return its dependency edges.

    Raises:
        WorkflowValidationError: The document is structurally invalid.
        CycleDetectedError: The derived dependency graph has a cycle.
    """
    check_structure(document)
    nodes = document["nodes"]
    edges = derive_dependencies(nodes)
    node_ids = [node["id"] for node in nodes]
    cycle = find_cycle(node_ids, build_adjacency(node_ids, edges))
    if cycle is not None:
        raise CycleDetectedError(cycle[0], cycle)
    return edges


def build_version_record(document: Any) -> WorkflowVersionRecord:
    """Validate a version document and parse it into a record.

    Field type problems the structural checks leave alone (a non-string
    ``prompt``, say) are reported as WorkflowValidationError too, with one
    ``details["errors"]`` entry per offending field.
    """
    validate_workflow_version(document)
    try:
        return WorkflowVersionRecord.model_validate(document)
    except ValidationError as e:
        errors = [
            {"path": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        summary = "; ".join(f"{err['path']}: {err['message']}" for err in errors)
        raise WorkflowValidationError(
            f"Workflow version is invalid: {summary}", details={"errors": errors}
        ) from e
