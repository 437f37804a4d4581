"""Error taxonomy for collectflow.

Every error carries a human-readable message plus structured details, and
knows which HTTP status it maps to when surfaced through the API.
"""

from typing import Any


class CollectflowError(Exception):
    """Base exception for collectflow errors."""

    code = "collectflow_error"
    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_payload(self) -> dict[str, Any]:
        """Structured error payload for clients."""
        return {
            "error": {
                "type": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


class WorkspaceNotInitializedError(CollectflowError):
    """The workspace directory has not been created yet."""

    code = "workspace_not_initialized"
    status_code = 409


class UnknownKindError(CollectflowError):
    """A collection kind is not declared in the workflow's collection schema."""

    code = "unknown_kind"
    status_code = 400

    def __init__(self, kind: str, known_kinds: list[str]):
        known = ", ".join(known_kinds) if known_kinds else "(none)"
        super().__init__(
            f"Unknown collection kind '{kind}'. Known kinds: {known}",
            details={"kind": kind, "known_kinds": known_kinds},
        )
        self.kind = kind
        self.known_kinds = known_kinds


class SchemaValidationError(CollectflowError):
    """A payload failed its kind's item schema.

    ``diagnostics`` holds one entry per violation, ``index`` is set when the
    payload was part of a batch.
    """

    code = "schema_validation_failed"
    status_code = 422

    def __init__(self, kind: str, diagnostics: list[Any], index: int | None = None):
        self.kind = kind
        self.diagnostics = diagnostics
        self.index = index
        lines = "; ".join(f"{d.path}: {d.message}" for d in diagnostics)
        prefix = f"items[{index}] " if index is not None else ""
        super().__init__(
            f"{prefix}{kind} item failed schema validation: {lines}",
            details={
                "kind": kind,
                "index": index,
                "diagnostics": [{"path": d.path, "message": d.message} for d in diagnostics],
            },
        )


class CollectionSchemaError(CollectflowError):
    """A kind's item_schema is not itself a valid JSON Schema."""

    code = "invalid_collection_schema"
    status_code = 422


class WorkflowValidationError(CollectflowError):
    """Structural problem in a workflow version document."""

    code = "workflow_invalid"
    status_code = 422


class CycleDetectedError(CollectflowError):
    """The collection dataflow between nodes contains a cycle."""

    code = "cycle_detected"
    status_code = 422

    def __init__(self, node_id: str, cycle: list[str] | None = None):
        cycle = cycle or [node_id]
        super().__init__(
            f"Cycle detected in node dependencies at node '{node_id}': {' -> '.join(cycle)}",
            details={"node_id": node_id, "cycle": cycle},
        )
        self.node_id = node_id
        self.cycle = cycle


class PatchApplyError(CollectflowError):
    """A patch operation could not be applied."""

    code = "patch_apply_failed"
    status_code = 422


class PatchTestFailedError(PatchApplyError):
    """A ``test`` operation found a different value than expected."""

    code = "patch_test_failed"
    status_code = 409


class InvalidTransitionError(CollectflowError):
    """A status change that would move a record backwards."""

    code = "invalid_transition"
    status_code = 409


class RecordUpdateError(CollectflowError):
    """An update names fields a record does not have, or gives them bad values."""

    code = "invalid_record_update"
    status_code = 422


class NotFoundError(CollectflowError):
    """Base class for missing single records."""

    code = "not_found"
    status_code = 404


class RunNotFoundError(NotFoundError):
    code = "run_not_found"

    def __init__(self, run_id: str):
        super().__init__(f"Run not found: {run_id}", details={"run_id": run_id})
        self.run_id = run_id


class WorkflowNotFoundError(NotFoundError):
    code = "workflow_not_found"

    def __init__(self, workflow_id: str):
        super().__init__(
            f"Workflow not found: {workflow_id}", details={"workflow_id": workflow_id}
        )
        self.workflow_id = workflow_id


class WorkflowVersionNotFoundError(NotFoundError):
    code = "workflow_version_not_found"

    def __init__(self, workflow_id: str, version_id: str):
        super().__init__(
            f"Workflow version not found: {workflow_id}@{version_id}",
            details={"workflow_id": workflow_id, "version_id": version_id},
        )
        self.workflow_id = workflow_id
        self.version_id = version_id


class MutationNotFoundError(NotFoundError):
    code = "mutation_not_found"

    def __init__(self, mutation_id: str):
        super().__init__(
            f"Mutation not found: {mutation_id}", details={"mutation_id": mutation_id}
        )
        self.mutation_id = mutation_id


class NodeNotFoundError(NotFoundError):
    code = "node_not_found"
