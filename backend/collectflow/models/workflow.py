"""Pydantic models for workflows and their immutable versions."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from collectflow.models.common import compact_dump


class NodeType(str, Enum):
    """Kinds of work a node can represent."""

    PROMPT = "PROMPT"
    HUMAN_IN_THE_LOOP = "HUMAN_IN_THE_LOOP"


class WorkflowNode(BaseModel):
    """A unit of work wired to others only through collections."""

    id: str
    type: NodeType
    input_collections: list[str] = Field(default_factory=list)
    output_collections: list[str] = Field(default_factory=list)
    description: str | None = None
    prompt: str | None = None
    minimum_rows: int | None = None

    model_config = {"extra": "allow"}


class WorkflowVersionRecord(BaseModel):
    """Immutable snapshot of a workflow's nodes."""

    workflow_id: str
    version_id: str
    name: str | None = None
    description: str | None = None
    created_at: str | None = None
    nodes: list[WorkflowNode] = Field(default_factory=list)

    model_config = {"extra": "allow"}

    def get_node(self, node_id: str) -> WorkflowNode | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def to_document(self) -> dict[str, Any]:
        """Plain JSON document, optional fields omitted when unset."""
        data = compact_dump(self)
        data["nodes"] = [compact_dump(node) for node in self.nodes]
        return data


class WorkflowRecord(BaseModel):
    """Workflow metadata holding the current-version pointer."""

    workflow_id: str
    name: str
    description: str | None = None
    current_version_id: str
    created_at: str


class WorkflowSummary(BaseModel):
    """Entry in the workflow index."""

    workflow_id: str
    name: str
    created_at: str


class WorkflowIndex(BaseModel):
    """Top-level list of workflows in a workspace."""

    current_workflow_id: str | None = None
    workflows: list[WorkflowSummary] = Field(default_factory=list)


class DependencyEdge(BaseModel):
    """Producer to consumer edge derived from a shared collection."""

    from_node: str = Field(alias="from")
    to_node: str = Field(alias="to")
    collection: str

    model_config = {"populate_by_name": True}
