"""Run, event, node-result, next-step and collection routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from collectflow.api.deps import get_store
from collectflow.db.workspace_store import WorkspaceStore
from collectflow.models import CollectionStore, EventRecord, NodeResultRecord, RunRecord
from collectflow.services.run_engine import NextStepResult, RunEngine

router = APIRouter()

Store = Annotated[WorkspaceStore, Depends(get_store)]


@router.get("/runs", response_model=list[RunRecord])
async def list_runs(store: Store, workflow_id: str | None = Query(default=None)) -> list[RunRecord]:
    return await store.list_runs(workflow_id=workflow_id)


@router.get("/runs/{run_id}", response_model=RunRecord)
async def get_run(run_id: str, store: Store) -> RunRecord:
    return await store.read_run_file(run_id)


@router.get("/runs/{run_id}/events", response_model=list[EventRecord])
async def get_events(run_id: str, store: Store) -> list[EventRecord]:
    return await store.read_events(run_id)


@router.get("/runs/{run_id}/node-results", response_model=list[NodeResultRecord])
async def get_node_results(run_id: str, store: Store) -> list[NodeResultRecord]:
    return await store.list_node_results(run_id)


@router.get("/runs/{run_id}/next-step", response_model=NextStepResult)
async def get_next_step(run_id: str, store: Store) -> NextStepResult:
    return await RunEngine(store).get_next_step(run_id)


@router.get("/runs/{run_id}/collections", response_model=list[str])
async def list_collection_kinds(run_id: str, store: Store) -> list[str]:
    return await store.list_collection_kinds_for_run(run_id)


@router.get("/runs/{run_id}/collections/{kind}", response_model=CollectionStore)
async def get_collection(run_id: str, kind: str, store: Store) -> CollectionStore:
    return await store.read_collections(run_id, kind)
