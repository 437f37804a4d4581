"""Workflow, version and collection-schema routes."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from collectflow.api.deps import get_store
from collectflow.db.workspace_store import WorkspaceStore
from collectflow.models import DependencyEdge, WorkflowIndex, WorkflowRecord
from collectflow.services.graph_validator import derive_dependencies

router = APIRouter()

Store = Annotated[WorkspaceStore, Depends(get_store)]


class WorkspaceInfo(BaseModel):
    """Summary of the workspace."""

    path: str
    index: WorkflowIndex


class VersionList(BaseModel):
    workflow_id: str
    current_version_id: str
    version_ids: list[str]


class VersionDetail(BaseModel):
    """A version document plus the dependency edges derived from it."""

    version: dict[str, Any]
    dependencies: list[DependencyEdge]


@router.get("/workspace", response_model=WorkspaceInfo)
async def get_workspace(store: Store) -> WorkspaceInfo:
    return WorkspaceInfo(path=str(store.paths.base), index=await store.read_workflow_index())


@router.get("/workflows", response_model=list[WorkflowRecord])
async def list_workflows(store: Store) -> list[WorkflowRecord]:
    return await store.list_workflows()


@router.get("/workflows/{workflow_id}", response_model=WorkflowRecord)
async def get_workflow(workflow_id: str, store: Store) -> WorkflowRecord:
    return await store.read_workflow_record(workflow_id)


@router.get("/workflows/{workflow_id}/versions", response_model=VersionList)
async def list_versions(workflow_id: str, store: Store) -> VersionList:
    workflow = await store.read_workflow_record(workflow_id)
    return VersionList(
        workflow_id=workflow_id,
        current_version_id=workflow.current_version_id,
        version_ids=await store.list_workflow_version_ids(workflow_id),
    )


@router.get("/workflows/{workflow_id}/versions/{version_id}", response_model=VersionDetail)
async def get_version(workflow_id: str, version_id: str, store: Store) -> VersionDetail:
    document = await store.read_workflow_version_document(workflow_id, version_id)
    return VersionDetail(
        version=document,
        dependencies=derive_dependencies(document.get("nodes", [])),
    )


@router.get("/workflows/{workflow_id}/collection-schema")
async def get_collection_schema(workflow_id: str, store: Store) -> dict[str, Any]:
    await store.read_workflow_record(workflow_id)
    schema = await store.read_collection_schema(workflow_id)
    return schema.to_document()
