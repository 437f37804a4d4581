"""MutationEngine - evolves workflows through JSON Patch mutations.

A mutation never edits a version in place. The patch is applied to a copy of
the base version, the result is validated as a complete workflow, and only
then is it written as the next version and made current. Anything that fails
along the way leaves the workspace exactly as it was.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from collectflow.db.workspace import generate_id, now_iso, version_number
from collectflow.errors import CollectflowError, InvalidTransitionError, WorkflowValidationError
from collectflow.models import (
    MutationRecord,
    MutationStatus,
    MutationTarget,
    PatchOperation,
)
from collectflow.services.graph_validator import build_version_record
from collectflow.services.json_patch import apply_patch, parse_operations

if TYPE_CHECKING:
    from collectflow.db.workspace_store import WorkspaceStore

logger = logging.getLogger(__name__)


@dataclass
class MutationApplication:
    """Result of applying a stored mutation."""

    mutation: MutationRecord
    new_version_id: str


class MutationEngine:
    """Applies patches to workflow versions under a per-workflow lock."""

    def __init__(self, store: WorkspaceStore) -> None:
        self._store = store

    async def _commit(self, workflow_id: str, candidate: dict[str, Any]) -> str:
        """Validate and persist a candidate document as the next version.

        Caller must hold the workflow lock.
        """
        version_id = await self._store.next_version_id(workflow_id)
        candidate["workflow_id"] = workflow_id
        candidate["version_id"] = version_id
        candidate["created_at"] = now_iso()
        if version_number(str(candidate.get("name", ""))) is not None:
            candidate["name"] = version_id
        record = build_version_record(candidate)
        await self._store.write_workflow_version_record(record)
        await self._store.set_current_version(workflow_id, version_id)
        return version_id

    async def _apply_locked(
        self, from_version_id: str, operations: list[PatchOperation], workflow_id: str
    ) -> str:
        base = await self._store.read_workflow_version_document(workflow_id, from_version_id)
        workflow = await self._store.read_workflow_record(workflow_id)
        if workflow.current_version_id != from_version_id:
            logger.warning(
                f"Rejected patch for {workflow_id}@{from_version_id}: "
                f"current version is {workflow.current_version_id}"
            )
            raise InvalidTransitionError(
                f"Patch base {from_version_id} is stale; "
                f"{workflow_id} is at {workflow.current_version_id}",
                details={
                    "workflow_id": workflow_id,
                    "from_version": from_version_id,
                    "current_version": workflow.current_version_id,
                },
            )
        try:
            candidate = apply_patch(base, operations)
            if not isinstance(candidate, dict):
                raise WorkflowValidationError("Patched workflow must be a JSON object")
            new_version_id = await self._commit(workflow_id, candidate)
        except CollectflowError as e:
            logger.warning(f"Rejected patch for {workflow_id}@{from_version_id}: {e.message}")
            raise
        logger.info(f"Applied patch to {workflow_id}@{from_version_id} -> {new_version_id}")
        return new_version_id

    async def apply_mutation_to_workspace(
        self,
        from_version_id: str,
        patch: list[PatchOperation | dict[str, Any]],
        workflow_id: str,
    ) -> str:
        """Apply ``patch`` to ``from_version_id`` and commit the next version.

        Args:
            from_version_id: Version the patch was written against.
            patch: Ordered JSON Patch operations.
            workflow_id: Workflow to evolve.

        Returns:
            The new version id.

        Raises:
            WorkflowVersionNotFoundError: The base version does not exist.
            InvalidTransitionError: ``from_version_id`` is no longer current.
            PatchApplyError: A malformed operation or missing path.
            PatchTestFailedError: A ``test`` operation did not match.
            WorkflowValidationError: The patched workflow is structurally invalid.
            CycleDetectedError: The patched workflow has a dataflow cycle.
        """
        operations = parse_operations(patch)
        async with self._store.locks.workflow(workflow_id):
            return await self._apply_locked(from_version_id, operations, workflow_id)

    async def set_workflow_version(self, workflow_id: str, document: dict[str, Any]) -> str:
        """Commit a complete replacement of a workflow's nodes as its next version."""
        await self._store.read_workflow_record(workflow_id)
        async with self._store.locks.workflow(workflow_id):
            new_version_id = await self._commit(workflow_id, dict(document))
        logger.info(f"Set workflow {workflow_id} to new version {new_version_id}")
        return new_version_id

    # ==================== Mutation records ====================

    async def propose_mutation(
        self,
        patch: list[PatchOperation | dict[str, Any]],
        reason: str,
        by: str,
        workflow_id: str | None = None,
    ) -> MutationRecord:
        """Store a proposed mutation against the workflow's current version."""
        operations = parse_operations(patch)
        workflow_id = workflow_id or await self._store.get_current_workflow_id()
        workflow = await self._store.read_workflow_record(workflow_id)

        mutation = MutationRecord(
            mutation_id=generate_id("mut"),
            target=MutationTarget(
                workflow_id=workflow_id, from_version=workflow.current_version_id
            ),
            patch=[op.to_document() for op in operations],
            reason=reason,
            status=MutationStatus.PROPOSED,
            created_by=by,
            created_at=now_iso(),
        )
        await self._store.write_mutation_file(mutation)
        logger.info(
            f"Proposed mutation {mutation.mutation_id} for "
            f"{workflow_id}@{workflow.current_version_id}"
        )
        return mutation

    async def _read_proposed(self, mutation_id: str) -> MutationRecord:
        mutation = await self._store.read_mutation_file(mutation_id)
        if mutation.status is not MutationStatus.PROPOSED:
            raise InvalidTransitionError(
                f"Mutation {mutation_id} is not proposed (status: {mutation.status.value})",
                details={"mutation_id": mutation_id, "status": mutation.status.value},
            )
        return mutation

    async def apply_mutation(self, mutation_id: str) -> MutationApplication:
        """Apply a proposed mutation and mark it applied.

        The status check, the version commit and the status update happen
        under the target workflow's lock. On failure the mutation stays
        ``proposed`` and the error propagates.
        """
        mutation = await self._read_proposed(mutation_id)
        workflow_id = mutation.target.workflow_id
        async with self._store.locks.workflow(workflow_id):
            mutation = await self._read_proposed(mutation_id)
            new_version_id = await self._apply_locked(
                mutation.target.from_version, parse_operations(mutation.patch), workflow_id
            )
            updated = await self._store.update_mutation_file(
                mutation_id,
                status=MutationStatus.APPLIED,
                applied_to_version=new_version_id,
            )
        return MutationApplication(mutation=updated, new_version_id=new_version_id)

    async def reject_mutation(self, mutation_id: str) -> MutationRecord:
        mutation = await self._read_proposed(mutation_id)
        async with self._store.locks.workflow(mutation.target.workflow_id):
            await self._read_proposed(mutation_id)
            updated = await self._store.update_mutation_file(
                mutation_id, status=MutationStatus.REJECTED
            )
        logger.info(f"Rejected mutation {mutation_id}")
        return updated
