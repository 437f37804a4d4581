"""RunEngine - infers what a caller should do next for a run.

Nothing here is stored or cached: every answer is derived from the run
record, its node results, which collections hold data, and the workflow
version. Polling is therefore idempotent.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel

from collectflow.errors import WorkflowVersionNotFoundError
from collectflow.models import (
    NodeResultRecord,
    NodeResultStatus,
    RunRecord,
    RunStatus,
    WorkflowNode,
    WorkflowVersionRecord,
)

if TYPE_CHECKING:
    from collectflow.db.workspace_store import WorkspaceStore


class NextStepAction(str, Enum):
    RUN_NODE = "run_node"
    COMPLETE_NODE = "complete_node"
    COMPLETE_RUN = "complete_run"
    DONE = "done"


class NextStep(BaseModel):
    """Guidance for the caller driving a run."""

    action: NextStepAction
    node_id: str | None = None
    output_collections: list[str] | None = None
    collection_kind: str | None = None
    in_progress_node_id: str | None = None
    hint: str


class NextStepResult(BaseModel):
    next_step: NextStep
    run: RunRecord
    version: WorkflowVersionRecord | None = None
    current_node_id: str | None = None


def _node_step(action: NextStepAction, node: WorkflowNode, hint: str) -> NextStep:
    outputs = list(node.output_collections)
    return NextStep(
        action=action,
        node_id=node.id,
        output_collections=outputs,
        collection_kind=outputs[0] if len(outputs) == 1 else None,
        in_progress_node_id=node.id if action is NextStepAction.COMPLETE_NODE else None,
        hint=hint,
    )


def infer_next_step(
    run: RunRecord,
    version: WorkflowVersionRecord | None,
    node_results: list[NodeResultRecord],
    kinds_with_data: set[str],
) -> NextStep:
    """Decide the next action from persisted state.

    Order of precedence: a run that is not running (or has no loadable
    version) is done; a started node is resumed before anything new starts;
    otherwise the first not-yet-completed node, in declared order, whose
    input collections all hold data is run; when every node is completed
    the run should be completed.
    """
    if run.status is not RunStatus.RUNNING:
        return NextStep(action=NextStepAction.DONE, hint="Run is not running.")
    if version is None:
        return NextStep(action=NextStepAction.DONE, hint="Workflow version not found.")

    completed = {r.node_id for r in node_results if r.status is NodeResultStatus.COMPLETED}
    started = {r.node_id for r in node_results if r.status is NodeResultStatus.STARTED}

    for node in version.nodes:
        if node.id in started:
            outputs = ", ".join(node.output_collections) or "no collections"
            return _node_step(
                NextStepAction.COMPLETE_NODE,
                node,
                f"Produce output for node '{node.id}' ({outputs}), then complete the node.",
            )

    for node in version.nodes:
        if node.id in completed:
            continue
        if all(kind in kinds_with_data for kind in node.input_collections):
            outputs = ", ".join(node.output_collections) or "no collections"
            return _node_step(
                NextStepAction.RUN_NODE,
                node,
                f"Start node '{node.id}' and write its output ({outputs}).",
            )

    if version.nodes and all(node.id in completed for node in version.nodes):
        return NextStep(
            action=NextStepAction.COMPLETE_RUN,
            hint="All nodes are completed. Complete the run.",
        )
    return NextStep(
        action=NextStepAction.DONE,
        hint="No runnable node (inputs not ready) or workflow has no nodes.",
    )


class RunEngine:
    """Loads run state from the store and applies ``infer_next_step``."""

    def __init__(self, store: WorkspaceStore) -> None:
        self._store = store

    async def get_next_step(self, run_id: str) -> NextStepResult:
        """Next action for a run. Raises RunNotFoundError for an unknown run."""
        run = await self._store.read_run_file(run_id)
        if run.status is not RunStatus.RUNNING:
            return NextStepResult(next_step=infer_next_step(run, None, [], set()), run=run)

        try:
            version = await self._store.read_workflow_version_record(
                run.workflow_id, run.workflow_version_id
            )
        except WorkflowVersionNotFoundError:
            return NextStepResult(next_step=infer_next_step(run, None, [], set()), run=run)

        node_results = await self._store.list_node_results(run_id)
        kinds_with_data = await self._store.kinds_with_items(run_id)
        next_step = infer_next_step(run, version, node_results, kinds_with_data)
        return NextStepResult(
            next_step=next_step,
            run=run,
            version=version,
            current_node_id=next_step.in_progress_node_id,
        )
