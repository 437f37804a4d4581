"""Pydantic models for collectflow documents."""

from collectflow.models.collection import (
    SYSTEM_FIELDS,
    CollectionKindSchema,
    CollectionReference,
    CollectionSchemaConfig,
    CollectionStore,
    GlobalEntityStore,
    Provenance,
)
from collectflow.models.common import compact_dump
from collectflow.models.event import EventRecord, EventType
from collectflow.models.mutation import (
    MutationRecord,
    MutationStatus,
    MutationTarget,
    PatchOperation,
)
from collectflow.models.run import (
    NodeResultRecord,
    NodeResultStatus,
    NodeResultWrite,
    RunRecord,
    RunStatus,
)
from collectflow.models.workflow import (
    DependencyEdge,
    NodeType,
    WorkflowIndex,
    WorkflowNode,
    WorkflowRecord,
    WorkflowSummary,
    WorkflowVersionRecord,
)

__all__ = [
    "SYSTEM_FIELDS",
    "CollectionKindSchema",
    "CollectionReference",
    "CollectionSchemaConfig",
    "CollectionStore",
    "DependencyEdge",
    "EventRecord",
    "EventType",
    "GlobalEntityStore",
    "MutationRecord",
    "MutationStatus",
    "MutationTarget",
    "NodeResultRecord",
    "NodeResultStatus",
    "NodeResultWrite",
    "NodeType",
    "PatchOperation",
    "Provenance",
    "RunRecord",
    "RunStatus",
    "WorkflowIndex",
    "WorkflowNode",
    "WorkflowRecord",
    "WorkflowSummary",
    "WorkflowVersionRecord",
    "compact_dump",
]
