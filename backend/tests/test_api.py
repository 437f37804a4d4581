"""Tests for the HTTP read API."""

import pytest
from httpx import ASGITransport, AsyncClient

from collectflow.main import create_app
from collectflow.services.mutation_engine import MutationEngine
from collectflow.services.run_lifecycle import RunLifecycle


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestWorkflowRoutes:
    """Tests for workflow endpoints."""

    @pytest.mark.asyncio
    async def test_workspace(self, client):
        response = await client.get("/api/v1/workspace")
        assert response.status_code == 200
        assert response.json()["index"]["current_workflow_id"] == "wf_ab"

    @pytest.mark.asyncio
    async def test_list_workflows(self, client):
        response = await client.get("/api/v1/workflows")
        assert [w["workflow_id"] for w in response.json()] == ["wf_default", "wf_ab"]

    @pytest.mark.asyncio
    async def test_version_includes_dependencies(self, client):
        response = await client.get("/api/v1/workflows/wf_ab/versions/v1")
        assert response.status_code == 200
        body = response.json()
        assert [n["id"] for n in body["version"]["nodes"]] == ["A", "B"]
        assert body["dependencies"] == [{"from": "A", "to": "B", "collection": "x"}]

    @pytest.mark.asyncio
    async def test_versions_after_mutation(self, client, mutation_engine):
        await mutation_engine.apply_mutation_to_workspace(
            "v1", [{"op": "replace", "path": "/nodes/1/type", "value": "HUMAN_IN_THE_LOOP"}], "wf_ab"
        )
        response = await client.get("/api/v1/workflows/wf_ab/versions")
        assert response.json() == {
            "workflow_id": "wf_ab",
            "current_version_id": "v2",
            "version_ids": ["v1", "v2"],
        }

    @pytest.mark.asyncio
    async def test_collection_schema(self, client):
        response = await client.get("/api/v1/workflows/wf_ab/collection-schema")
        kinds = response.json()["kinds"]
        assert kinds["x"]["required"] == ["title"]

    @pytest.mark.asyncio
    async def test_unknown_workflow(self, client):
        response = await client.get("/api/v1/workflows/wf_nope")
        assert response.status_code == 404
        assert response.json()["error"]["type"] == "workflow_not_found"

    @pytest.mark.asyncio
    async def test_unknown_version(self, client):
        response = await client.get("/api/v1/workflows/wf_ab/versions/v9")
        assert response.status_code == 404


class TestRunRoutes:
    """Tests for run endpoints."""

    @pytest.mark.asyncio
    async def test_run_views(self, client, lifecycle):
        run = await lifecycle.start_run({"topic": "lineage"})
        await lifecycle.start_node(run.run_id, "A")
        await lifecycle.write_node_output(run.run_id, "A", "x", [{"title": "one"}])

        response = await client.get(f"/api/v1/runs/{run.run_id}")
        assert response.json()["status"] == "running"

        events = (await client.get(f"/api/v1/runs/{run.run_id}/events")).json()
        assert [e["type"] for e in events] == ["run_started", "step_started", "collection_written"]

        results = (await client.get(f"/api/v1/runs/{run.run_id}/node-results")).json()
        assert results[0]["node_id"] == "A"
        assert results[0]["writes"][0]["kind"] == "x"

        kinds = (await client.get(f"/api/v1/runs/{run.run_id}/collections")).json()
        assert kinds == ["x"]

        collection = (await client.get(f"/api/v1/runs/{run.run_id}/collections/x")).json()
        assert collection["items"][0]["title"] == "one"

    @pytest.mark.asyncio
    async def test_next_step(self, client, lifecycle):
        run = await lifecycle.start_run({})
        response = await client.get(f"/api/v1/runs/{run.run_id}/next-step")
        assert response.status_code == 200
        next_step = response.json()["next_step"]
        assert next_step["action"] == "run_node"
        assert next_step["node_id"] == "A"

    @pytest.mark.asyncio
    async def test_list_runs(self, client, lifecycle):
        await lifecycle.start_run({})
        response = await client.get("/api/v1/runs", params={"workflow_id": "wf_ab"})
        assert len(response.json()) == 1

    @pytest.mark.asyncio
    async def test_unknown_run(self, client):
        response = await client.get("/api/v1/runs/run_missing/events")
        assert response.status_code == 404
        assert response.json()["error"]["details"] == {"run_id": "run_missing"}

    @pytest.mark.asyncio
    async def test_empty_collection(self, client, lifecycle):
        run = await lifecycle.start_run({})
        response = await client.get(f"/api/v1/runs/{run.run_id}/collections/x")
        assert response.status_code == 200
        assert response.json()["items"] == []


class TestMutationRoutes:
    """Tests for mutation endpoints."""

    @pytest.mark.asyncio
    async def test_list_and_get(self, client, ab_store):
        engine = MutationEngine(ab_store)
        mutation = await engine.propose_mutation(
            [{"op": "remove", "path": "/nodes/1"}], "drop B", "alice"
        )

        listed = (await client.get("/api/v1/mutations", params={"status": "proposed"})).json()
        assert [m["mutation_id"] for m in listed] == [mutation.mutation_id]

        fetched = (await client.get(f"/api/v1/mutations/{mutation.mutation_id}")).json()
        assert fetched["patch"] == [{"op": "remove", "path": "/nodes/1"}]

    @pytest.mark.asyncio
    async def test_missing_mutation(self, client):
        response = await client.get("/api/v1/mutations/mut_missing")
        assert response.status_code == 404


class TestUninitializedWorkspace:
    @pytest.mark.asyncio
    async def test_conflict_before_init(self, tmp_path):
        app = create_app(tmp_path)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/api/v1/workflows")
        assert response.status_code == 409
        assert response.json()["error"]["type"] == "workspace_not_initialized"

    @pytest.mark.asyncio
    async def test_first_run_seeds_input(self, tmp_path):
        app = create_app(tmp_path)
        store = app.state.store
        await store.init_workspace(add_gitignore=False)
        run = await RunLifecycle(store).start_run({"topic": "lineage"})

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get(f"/api/v1/runs/{run.run_id}/next-step")
        assert response.json()["next_step"]["node_id"] == "retrieve_sources"
