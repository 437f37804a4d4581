"""Tests for the mutation_engine service."""

import asyncio

import pytest

from collectflow.errors import (
    CycleDetectedError,
    InvalidTransitionError,
    PatchApplyError,
    PatchTestFailedError,
    WorkflowValidationError,
    WorkflowVersionNotFoundError,
)
from collectflow.models import MutationStatus

AB_WORKFLOW_ID = "wf_ab"

ADD_C = [
    {
        "op": "add",
        "path": "/nodes/-",
        "value": {
            "id": "C",
            "type": "HUMAN_IN_THE_LOOP",
            "input_collections": ["y"],
            "output_collections": ["z"],
        },
    }
]

# A reads y, which B produces from A's x
CYCLE = [{"op": "add", "path": "/nodes/0/input_collections/-", "value": "y"}]


class TestApplyMutationToWorkspace:
    """Tests for committing patched versions."""

    @pytest.mark.asyncio
    async def test_creates_next_version(self, mutation_engine, ab_store):
        new_version = await mutation_engine.apply_mutation_to_workspace("v1", ADD_C, AB_WORKFLOW_ID)

        assert new_version == "v2"
        record = await ab_store.read_workflow_record(AB_WORKFLOW_ID)
        assert record.current_version_id == "v2"
        version = await ab_store.read_workflow_version_record(AB_WORKFLOW_ID, "v2")
        assert [n.id for n in version.nodes] == ["A", "B", "C"]
        assert version.version_id == "v2"

    @pytest.mark.asyncio
    async def test_base_version_unchanged(self, mutation_engine, ab_store):
        await mutation_engine.apply_mutation_to_workspace("v1", ADD_C, AB_WORKFLOW_ID)
        v1 = await ab_store.read_workflow_version_record(AB_WORKFLOW_ID, "v1")
        assert [n.id for n in v1.nodes] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_cycle_leaves_workspace_unchanged(self, mutation_engine, ab_store):
        with pytest.raises(CycleDetectedError):
            await mutation_engine.apply_mutation_to_workspace("v1", CYCLE, AB_WORKFLOW_ID)

        assert await ab_store.list_workflow_version_ids(AB_WORKFLOW_ID) == ["v1"]
        record = await ab_store.read_workflow_record(AB_WORKFLOW_ID)
        assert record.current_version_id == "v1"

    @pytest.mark.asyncio
    async def test_structural_error_writes_nothing(self, mutation_engine, ab_store):
        patch = [{"op": "replace", "path": "/nodes/1/id", "value": "A"}]
        with pytest.raises(WorkflowValidationError, match="Duplicate node id"):
            await mutation_engine.apply_mutation_to_workspace("v1", patch, AB_WORKFLOW_ID)
        assert await ab_store.list_workflow_version_ids(AB_WORKFLOW_ID) == ["v1"]

    @pytest.mark.asyncio
    async def test_mistyped_node_field_is_a_workflow_error(self, mutation_engine, ab_store):
        patch = [{"op": "add", "path": "/nodes/0/prompt", "value": 123}]
        with pytest.raises(WorkflowValidationError) as exc_info:
            await mutation_engine.apply_mutation_to_workspace("v1", patch, AB_WORKFLOW_ID)

        assert [e["path"] for e in exc_info.value.details["errors"]] == ["nodes.0.prompt"]
        assert await ab_store.list_workflow_version_ids(AB_WORKFLOW_ID) == ["v1"]
        record = await ab_store.read_workflow_record(AB_WORKFLOW_ID)
        assert record.current_version_id == "v1"

    @pytest.mark.asyncio
    async def test_failed_test_op(self, mutation_engine, ab_store):
        patch = [{"op": "test", "path": "/nodes/0/id", "value": "B"}, *ADD_C]
        with pytest.raises(PatchTestFailedError):
            await mutation_engine.apply_mutation_to_workspace("v1", patch, AB_WORKFLOW_ID)
        assert await ab_store.list_workflow_version_ids(AB_WORKFLOW_ID) == ["v1"]

    @pytest.mark.asyncio
    async def test_missing_path(self, mutation_engine):
        patch = [{"op": "remove", "path": "/nodes/9"}]
        with pytest.raises(PatchApplyError):
            await mutation_engine.apply_mutation_to_workspace("v1", patch, AB_WORKFLOW_ID)

    @pytest.mark.asyncio
    async def test_unknown_base_version(self, mutation_engine):
        with pytest.raises(WorkflowVersionNotFoundError):
            await mutation_engine.apply_mutation_to_workspace("v9", ADD_C, AB_WORKFLOW_ID)

    @pytest.mark.asyncio
    async def test_stale_base_is_rejected(self, mutation_engine, ab_store):
        await mutation_engine.apply_mutation_to_workspace("v1", ADD_C, AB_WORKFLOW_ID)
        with pytest.raises(InvalidTransitionError, match="stale"):
            await mutation_engine.apply_mutation_to_workspace(
                "v1", [{"op": "remove", "path": "/nodes/1"}], AB_WORKFLOW_ID
            )
        assert await ab_store.list_workflow_version_ids(AB_WORKFLOW_ID) == ["v1", "v2"]

    @pytest.mark.asyncio
    async def test_concurrent_mutations_from_same_base(self, mutation_engine, ab_store):
        results = await asyncio.gather(
            mutation_engine.apply_mutation_to_workspace("v1", ADD_C, AB_WORKFLOW_ID),
            mutation_engine.apply_mutation_to_workspace(
                "v1", [{"op": "remove", "path": "/nodes/1"}], AB_WORKFLOW_ID
            ),
            return_exceptions=True,
        )

        assert sorted(type(r).__name__ for r in results) == ["InvalidTransitionError", "str"]
        assert await ab_store.list_workflow_version_ids(AB_WORKFLOW_ID) == ["v1", "v2"]

    @pytest.mark.asyncio
    async def test_chained_mutations(self, mutation_engine, ab_store):
        await mutation_engine.apply_mutation_to_workspace("v1", ADD_C, AB_WORKFLOW_ID)
        patch = [{"op": "replace", "path": "/nodes/2/type", "value": "PROMPT"}]
        assert await mutation_engine.apply_mutation_to_workspace("v2", patch, AB_WORKFLOW_ID) == "v3"

    @pytest.mark.asyncio
    async def test_set_workflow_version(self, mutation_engine, ab_store):
        document = {
            "nodes": [
                {"id": "only", "type": "PROMPT", "input_collections": [], "output_collections": ["x"]}
            ]
        }
        assert await mutation_engine.set_workflow_version(AB_WORKFLOW_ID, document) == "v2"
        version = await ab_store.read_workflow_version_record(AB_WORKFLOW_ID, "v2")
        assert [n.id for n in version.nodes] == ["only"]

    @pytest.mark.asyncio
    async def test_set_workflow_version_rejects_mistyped_fields(self, mutation_engine, ab_store):
        document = {
            "nodes": [
                {
                    "id": "only",
                    "type": "PROMPT",
                    "input_collections": [],
                    "output_collections": ["x"],
                    "description": 7,
                }
            ]
        }
        with pytest.raises(WorkflowValidationError, match="description"):
            await mutation_engine.set_workflow_version(AB_WORKFLOW_ID, document)
        assert await ab_store.list_workflow_version_ids(AB_WORKFLOW_ID) == ["v1"]


class TestMutationRecords:
    """Tests for the propose / apply / reject lifecycle."""

    @pytest.mark.asyncio
    async def test_propose_targets_current_version(self, mutation_engine):
        mutation = await mutation_engine.propose_mutation(ADD_C, "add review", "alice")

        assert mutation.status is MutationStatus.PROPOSED
        assert mutation.target.workflow_id == AB_WORKFLOW_ID
        assert mutation.target.from_version == "v1"
        assert mutation.patch[0]["op"] == "add"

    @pytest.mark.asyncio
    async def test_propose_rejects_malformed_patch(self, mutation_engine, ab_store):
        with pytest.raises(PatchApplyError):
            await mutation_engine.propose_mutation([{"op": "add"}], "broken", "alice")
        assert await ab_store.list_mutations() == []

    @pytest.mark.asyncio
    async def test_apply_marks_applied(self, mutation_engine, ab_store):
        mutation = await mutation_engine.propose_mutation(ADD_C, "add review", "alice")
        application = await mutation_engine.apply_mutation(mutation.mutation_id)

        assert application.new_version_id == "v2"
        stored = await ab_store.read_mutation_file(mutation.mutation_id)
        assert stored.status is MutationStatus.APPLIED
        assert stored.applied_to_version == "v2"

    @pytest.mark.asyncio
    async def test_apply_twice(self, mutation_engine):
        mutation = await mutation_engine.propose_mutation(ADD_C, "add review", "alice")
        await mutation_engine.apply_mutation(mutation.mutation_id)
        with pytest.raises(InvalidTransitionError):
            await mutation_engine.apply_mutation(mutation.mutation_id)

    @pytest.mark.asyncio
    async def test_failed_apply_stays_proposed(self, mutation_engine, ab_store):
        mutation = await mutation_engine.propose_mutation(CYCLE, "loop back", "alice")
        with pytest.raises(CycleDetectedError):
            await mutation_engine.apply_mutation(mutation.mutation_id)

        stored = await ab_store.read_mutation_file(mutation.mutation_id)
        assert stored.status is MutationStatus.PROPOSED
        assert stored.applied_to_version is None

    @pytest.mark.asyncio
    async def test_reject(self, mutation_engine):
        mutation = await mutation_engine.propose_mutation(ADD_C, "add review", "alice")
        rejected = await mutation_engine.reject_mutation(mutation.mutation_id)
        assert rejected.status is MutationStatus.REJECTED
        with pytest.raises(InvalidTransitionError):
            await mutation_engine.apply_mutation(mutation.mutation_id)

    @pytest.mark.asyncio
    async def test_list_by_status(self, mutation_engine, ab_store):
        first = await mutation_engine.propose_mutation(ADD_C, "one", "alice")
        await mutation_engine.propose_mutation(ADD_C, "two", "bob")
        await mutation_engine.reject_mutation(first.mutation_id)

        proposed = await ab_store.list_mutations(status=MutationStatus.PROPOSED)
        assert [m.reason for m in proposed] == ["two"]
