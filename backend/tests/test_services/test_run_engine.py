"""Tests for the run_engine service."""

import pytest

from collectflow.errors import RunNotFoundError
from collectflow.models import (
    NodeResultRecord,
    NodeResultStatus,
    RunRecord,
    RunStatus,
    WorkflowVersionRecord,
)
from collectflow.services.run_engine import NextStepAction, infer_next_step

NOW = "2026-01-01T00:00:00+00:00"


def _run(status=RunStatus.RUNNING):
    return RunRecord(
        run_id="run_1",
        workflow_id="wf_ab",
        workflow_version_id="v1",
        status=status,
        created_at=NOW,
    )


def _version(*nodes):
    return WorkflowVersionRecord.model_validate(
        {"workflow_id": "wf_ab", "version_id": "v1", "nodes": list(nodes)}
    )


def _node(node_id, inputs=(), outputs=()):
    return {
        "id": node_id,
        "type": "PROMPT",
        "input_collections": list(inputs),
        "output_collections": list(outputs),
    }


def _result(node_id, status):
    return NodeResultRecord(
        node_result_id=f"nr_{node_id}_{status}",
        run_id="run_1",
        node_id=node_id,
        status=status,
        started_at=NOW,
    )


AB = _version(_node("A", outputs=["x"]), _node("B", inputs=["x"], outputs=["y"]))


class TestInferNextStep:
    """Tests for the pure decision procedure."""

    def test_finished_run_is_done(self):
        step = infer_next_step(_run(RunStatus.COMPLETED), AB, [], set())
        assert step.action is NextStepAction.DONE
        assert step.hint == "Run is not running."

    def test_missing_version_is_done(self):
        step = infer_next_step(_run(), None, [], set())
        assert step.action is NextStepAction.DONE
        assert step.hint == "Workflow version not found."

    def test_first_runnable_node(self):
        step = infer_next_step(_run(), AB, [], set())
        assert step.action is NextStepAction.RUN_NODE
        assert step.node_id == "A"
        assert step.output_collections == ["x"]
        assert step.collection_kind == "x"

    def test_started_node_is_resumed(self):
        step = infer_next_step(_run(), AB, [_result("A", NodeResultStatus.STARTED)], set())
        assert step.action is NextStepAction.COMPLETE_NODE
        assert step.node_id == "A"
        assert step.in_progress_node_id == "A"

    def test_started_node_wins_over_runnable_node(self):
        version = _version(_node("A", outputs=["x"]), _node("B", outputs=["y"]))
        step = infer_next_step(_run(), version, [_result("B", NodeResultStatus.STARTED)], set())
        assert step.action is NextStepAction.COMPLETE_NODE
        assert step.node_id == "B"

    def test_waits_for_input_data(self):
        results = [_result("A", NodeResultStatus.COMPLETED)]
        step = infer_next_step(_run(), AB, results, set())
        assert step.action is NextStepAction.DONE
        assert "No runnable node" in step.hint

    def test_next_node_once_input_has_data(self):
        results = [_result("A", NodeResultStatus.COMPLETED)]
        step = infer_next_step(_run(), AB, results, {"x"})
        assert step.action is NextStepAction.RUN_NODE
        assert step.node_id == "B"

    def test_failed_node_can_be_rerun(self):
        results = [_result("A", NodeResultStatus.FAILED)]
        step = infer_next_step(_run(), AB, results, set())
        assert step.action is NextStepAction.RUN_NODE
        assert step.node_id == "A"

    def test_all_completed(self):
        results = [_result("A", NodeResultStatus.COMPLETED), _result("B", NodeResultStatus.COMPLETED)]
        step = infer_next_step(_run(), AB, results, {"x", "y"})
        assert step.action is NextStepAction.COMPLETE_RUN

    def test_no_nodes(self):
        step = infer_next_step(_run(), _version(), [], set())
        assert step.action is NextStepAction.DONE

    def test_several_outputs_leave_kind_unset(self):
        version = _version(_node("A", outputs=["x", "z"]))
        step = infer_next_step(_run(), version, [], set())
        assert step.output_collections == ["x", "z"]
        assert step.collection_kind is None

    def test_declared_order_breaks_ties(self):
        version = _version(_node("second", outputs=["y"]), _node("first", outputs=["x"]))
        assert infer_next_step(_run(), version, [], set()).node_id == "second"


class TestRunEngine:
    """Tests for next-step inference over a stored run."""

    @pytest.mark.asyncio
    async def test_scenario_a_then_b(self, lifecycle, run_engine):
        run = await lifecycle.start_run({"topic": "lineage"})

        result = await run_engine.get_next_step(run.run_id)
        assert (result.next_step.action, result.next_step.node_id) == (NextStepAction.RUN_NODE, "A")

        await lifecycle.start_node(run.run_id, "A")
        result = await run_engine.get_next_step(run.run_id)
        assert (result.next_step.action, result.next_step.node_id) == (
            NextStepAction.COMPLETE_NODE,
            "A",
        )
        assert result.current_node_id == "A"

        await lifecycle.write_node_output(run.run_id, "A", "x", [{"title": "first find"}])
        await lifecycle.complete_node(run.run_id, "A")
        result = await run_engine.get_next_step(run.run_id)
        assert (result.next_step.action, result.next_step.node_id) == (NextStepAction.RUN_NODE, "B")

        await lifecycle.start_node(run.run_id, "B")
        await lifecycle.write_node_output(run.run_id, "B", "y", [{"text": "done"}])
        await lifecycle.complete_node(run.run_id, "B")
        result = await run_engine.get_next_step(run.run_id)
        assert result.next_step.action is NextStepAction.COMPLETE_RUN

        await lifecycle.complete_run(run.run_id, final_answer="ok")
        result = await run_engine.get_next_step(run.run_id)
        assert result.next_step.action is NextStepAction.DONE
        assert result.version is None

    @pytest.mark.asyncio
    async def test_polling_is_idempotent(self, lifecycle, run_engine):
        run = await lifecycle.start_run({"topic": "lineage"})
        first = await run_engine.get_next_step(run.run_id)
        second = await run_engine.get_next_step(run.run_id)
        assert first == second

    @pytest.mark.asyncio
    async def test_completed_node_without_output_waits(self, lifecycle, run_engine):
        run = await lifecycle.start_run({"topic": "lineage"})
        await lifecycle.start_node(run.run_id, "A")
        await lifecycle.complete_node(run.run_id, "A")

        result = await run_engine.get_next_step(run.run_id)
        assert result.next_step.action is NextStepAction.DONE

    @pytest.mark.asyncio
    async def test_unknown_run(self, run_engine):
        with pytest.raises(RunNotFoundError):
            await run_engine.get_next_step("run_missing")
