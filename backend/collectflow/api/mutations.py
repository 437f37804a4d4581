"""Mutation routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from collectflow.api.deps import get_store
from collectflow.db.workspace_store import WorkspaceStore
from collectflow.models import MutationRecord, MutationStatus

router = APIRouter()

Store = Annotated[WorkspaceStore, Depends(get_store)]


@router.get("/mutations", response_model=list[MutationRecord])
async def list_mutations(
    store: Store,
    workflow_id: str | None = Query(default=None),
    status: MutationStatus | None = Query(default=None),
) -> list[MutationRecord]:
    return await store.list_mutations(workflow_id=workflow_id, status=status)


@router.get("/mutations/{mutation_id}", response_model=MutationRecord)
async def get_mutation(mutation_id: str, store: Store) -> MutationRecord:
    return await store.read_mutation_file(mutation_id)
