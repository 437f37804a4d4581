"""RunLifecycle - records run progress and logs each step as an event.

Every state change writes the affected record first and then appends one
event to the run's log, so the log reads as the causal history of the run.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Literal

from collectflow.config import Settings, resolve_by
from collectflow.db.workspace import RUN_INPUT_KIND, generate_id, now_iso
from collectflow.errors import InvalidTransitionError, NodeNotFoundError
from collectflow.models import (
    EventRecord,
    EventType,
    NodeResultRecord,
    NodeResultStatus,
    NodeResultWrite,
    Provenance,
    RunRecord,
    RunStatus,
)

if TYPE_CHECKING:
    from collectflow.db.workspace_store import WorkspaceStore

logger = logging.getLogger(__name__)


class RunLifecycle:
    """Start runs, start and complete node attempts, complete runs."""

    def __init__(self, store: WorkspaceStore, settings: Settings | None = None) -> None:
        self._store = store
        self._settings = settings

    async def _log(
        self, run_id: str, event_type: EventType, by: str | None, data: dict[str, Any]
    ) -> None:
        event = EventRecord(
            ts=now_iso(), type=event_type.value, by=resolve_by(by, self._settings), data=data
        )
        await self._store.append_event_line(run_id, event)

    async def _require_running(self, run_id: str) -> RunRecord:
        run = await self._store.read_run_file(run_id)
        if run.status is not RunStatus.RUNNING:
            raise InvalidTransitionError(
                f"Run {run_id} is {run.status.value}",
                details={"run_id": run_id, "status": run.status.value},
            )
        return run

    async def start_run(
        self,
        input: dict[str, Any],
        workflow_id: str | None = None,
        name: str | None = None,
        by: str | None = None,
    ) -> RunRecord:
        """Start a run of a workflow's current version.

        When the workflow's collection schema declares ``run_input``, the input
        is also stored as the first item of that collection.
        """
        workflow_id = workflow_id or await self._store.get_current_workflow_id()
        workflow = await self._store.read_workflow_record(workflow_id)
        schema = await self._store.read_collection_schema(workflow_id)
        seed_input = RUN_INPUT_KIND in schema.kinds
        if seed_input:
            self._store.schemas.validate_item(schema, RUN_INPUT_KIND, input)

        run = RunRecord(
            run_id=generate_id("run"),
            name=name,
            workflow_id=workflow_id,
            workflow_version_id=workflow.current_version_id,
            status=RunStatus.RUNNING,
            input=input,
            created_at=now_iso(),
        )
        await self._store.write_run_file(run)
        await self._log(
            run.run_id,
            EventType.RUN_STARTED,
            by,
            {
                "workflow_id": workflow_id,
                "workflow_version_id": run.workflow_version_id,
                "input": input,
            },
        )
        if seed_input:
            await self._store.append_collection(run.run_id, RUN_INPUT_KIND, input)

        logger.info(f"Started run {run.run_id} on {workflow_id}@{run.workflow_version_id}")
        return run

    async def start_node(self, run_id: str, node_id: str, by: str | None = None) -> NodeResultRecord:
        """Record a new attempt of ``node_id`` in a running run."""
        run = await self._require_running(run_id)
        version = await self._store.read_workflow_version_record(
            run.workflow_id, run.workflow_version_id
        )
        if version.get_node(node_id) is None:
            raise NodeNotFoundError(
                f"Node {node_id} is not part of {run.workflow_id}@{run.workflow_version_id}",
                details={"run_id": run_id, "node_id": node_id},
            )

        result = NodeResultRecord(
            node_result_id=generate_id("nr"),
            run_id=run_id,
            node_id=node_id,
            status=NodeResultStatus.STARTED,
            started_at=now_iso(),
        )
        await self._store.write_node_result(result)
        await self._log(
            run_id,
            EventType.STEP_STARTED,
            by,
            {"node_id": node_id, "node_result_id": result.node_result_id},
        )
        return result

    async def _find_started(self, run_id: str, node_id: str) -> NodeResultRecord:
        started = [
            r
            for r in await self._store.list_node_results(run_id)
            if r.node_id == node_id and r.status is NodeResultStatus.STARTED
        ]
        if not started:
            raise NodeNotFoundError(
                f"Node {node_id} has no started attempt in run {run_id}",
                details={"run_id": run_id, "node_id": node_id},
            )
        return started[-1]

    @staticmethod
    def _ensure_still_started(result: NodeResultRecord) -> None:
        # re-checked under the attempt lock; a concurrent call may have closed it
        if result.status is not NodeResultStatus.STARTED:
            raise InvalidTransitionError(
                f"Attempt {result.node_result_id} of node {result.node_id} is already "
                f"{result.status.value}",
                details={
                    "node_result_id": result.node_result_id,
                    "node_id": result.node_id,
                    "status": result.status.value,
                },
            )

    async def write_node_output(
        self,
        run_id: str,
        node_id: str,
        kind: str,
        payloads: list[dict[str, Any]],
        mode: Literal["append", "set"] = "append",
        by: str | None = None,
    ) -> list[dict[str, Any]]:
        """Store items produced by the started attempt of ``node_id``.

        Items carry the node and attempt as provenance, and the attempt's
        ``writes`` list records their ids.
        """
        await self._require_running(run_id)
        result = await self._find_started(run_id, node_id)
        provenance = Provenance(
            created_by_node_id=node_id, created_by_node_result_id=result.node_result_id
        )

        async with self._store.locks.get(("node-result", result.node_result_id)):
            result = await self._store.read_node_result(run_id, result.node_result_id)
            self._ensure_still_started(result)
            if mode == "set":
                store = await self._store.write_collections(run_id, kind, payloads, provenance)
                items = store.items
            else:
                items = await self._store.append_collections(run_id, kind, payloads, provenance)

            item_ids = [item["id"] for item in items]
            writes = [w for w in result.writes if not (mode == "set" and w.kind == kind)]
            existing = next((w for w in writes if w.kind == kind), None)
            if existing is not None:
                existing.item_ids.extend(item_ids)
            else:
                writes.append(NodeResultWrite(kind=kind, item_ids=item_ids))
            result.writes = writes
            await self._store.write_node_result(result)

        await self._log(
            run_id,
            EventType.COLLECTION_WRITTEN,
            by,
            {"node_id": node_id, "kind": kind, "mode": mode, "item_ids": item_ids},
        )
        return items

    async def complete_node(
        self,
        run_id: str,
        node_id: str,
        status: NodeResultStatus = NodeResultStatus.COMPLETED,
        output: str | None = None,
        by: str | None = None,
    ) -> NodeResultRecord:
        """Close the started attempt of ``node_id`` with a final status."""
        status = NodeResultStatus(status)
        if status is NodeResultStatus.STARTED:
            raise InvalidTransitionError("A node attempt cannot be completed as 'started'")
        await self._require_running(run_id)
        result = await self._find_started(run_id, node_id)

        async with self._store.locks.get(("node-result", result.node_result_id)):
            result = await self._store.read_node_result(run_id, result.node_result_id)
            self._ensure_still_started(result)
            result.status = status
            result.completed_at = now_iso()
            if output is not None:
                result.output = output
            await self._store.write_node_result(result)

        await self._log(
            run_id,
            EventType.STEP_COMPLETED,
            by,
            {"node_id": node_id, "node_result_id": result.node_result_id, "status": status.value},
        )
        return result

    async def complete_run(
        self,
        run_id: str,
        status: RunStatus = RunStatus.COMPLETED,
        final_answer: str | None = None,
        by: str | None = None,
    ) -> RunRecord:
        """Finish a run as completed or failed."""
        status = RunStatus(status)
        if status is RunStatus.RUNNING:
            raise InvalidTransitionError("A run cannot be completed as 'running'")
        await self._require_running(run_id)
        fields: dict[str, Any] = {"status": status}
        if final_answer is not None:
            fields["final_answer"] = final_answer
        run = await self._store.update_run_file(run_id, **fields)

        data: dict[str, Any] = {"status": status.value}
        if final_answer is not None:
            data["final_answer"] = final_answer
        await self._log(run_id, EventType.RUN_COMPLETED, by, data)
        logger.info(f"Run {run_id} finished as {status.value}")
        return run
