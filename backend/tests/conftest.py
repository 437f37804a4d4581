"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from collectflow.config import Settings
from collectflow.db.workspace_store import WorkspaceStore
from collectflow.main import create_app
from collectflow.models import CollectionKindSchema, CollectionSchemaConfig
from collectflow.services.mutation_engine import MutationEngine
from collectflow.services.run_engine import RunEngine
from collectflow.services.run_lifecycle import RunLifecycle

AB_WORKFLOW_ID = "wf_ab"

AB_NODES = [
    {"id": "A", "type": "PROMPT", "input_collections": [], "output_collections": ["x"]},
    {"id": "B", "type": "PROMPT", "input_collections": ["x"], "output_collections": ["y"]},
]


def ab_schema() -> CollectionSchemaConfig:
    return CollectionSchemaConfig(
        workflow_id=AB_WORKFLOW_ID,
        kinds={
            "x": CollectionKindSchema(
                description="Things A found",
                required=["title"],
                item_schema={
                    "type": "object",
                    "properties": {
                        "title": {"type": "string"},
                        "score": {"type": "number"},
                    },
                },
            ),
            "y": CollectionKindSchema(description="What B made of them"),
        },
    )


@pytest.fixture
def workspace_path(tmp_path: Path) -> Path:
    return tmp_path


@pytest.fixture
async def store(workspace_path: Path) -> WorkspaceStore:
    """An initialized workspace in a temporary directory."""
    store = WorkspaceStore(workspace_path)
    await store.init_workspace(add_gitignore=False)
    return store


@pytest.fixture
async def ab_store(store: WorkspaceStore) -> WorkspaceStore:
    """Workspace with a two-node workflow A -> x -> B -> y made current."""
    await store.create_workflow(AB_WORKFLOW_ID, "A then B", AB_NODES, make_current=True)
    await store.write_collection_schema(ab_schema())
    return store


@pytest.fixture
def lifecycle(ab_store: WorkspaceStore, workspace_path: Path) -> RunLifecycle:
    return RunLifecycle(ab_store, Settings(workspace_path=workspace_path, default_by="test"))


@pytest.fixture
def run_engine(ab_store: WorkspaceStore) -> RunEngine:
    return RunEngine(ab_store)


@pytest.fixture
def mutation_engine(ab_store: WorkspaceStore) -> MutationEngine:
    return MutationEngine(ab_store)


@pytest.fixture
async def client(ab_store: WorkspaceStore, workspace_path: Path) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client over the test workspace."""
    app = create_app(workspace_path)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
