"""Pydantic models for collection schemas and collection stores."""

from typing import Any

from pydantic import BaseModel, Field

from collectflow.models.common import compact_dump

# Fields the store assigns; never part of a user payload.
SYSTEM_FIELDS = frozenset(
    {"id", "created_at", "created_by_node_id", "created_by_node_result_id", "run_id"}
)


class CollectionReference(BaseModel):
    """Declared link from one kind's field to another kind's items."""

    field: str
    kind: str
    many: bool = False


class CollectionKindSchema(BaseModel):
    """Contract for the items of one collection kind."""

    name: str | None = None
    description: str = ""
    required: list[str] = Field(default_factory=list)
    item_schema: dict[str, Any] = Field(default_factory=lambda: {"type": "object"})
    is_global: bool | None = Field(default=None, alias="global")
    references: list[CollectionReference] | None = None

    model_config = {"populate_by_name": True}


class CollectionSchemaConfig(BaseModel):
    """All kind schemas owned by a workflow."""

    workflow_id: str
    kinds: dict[str, CollectionKindSchema] = Field(default_factory=dict)

    def to_document(self) -> dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "kinds": {kind: compact_dump(schema) for kind, schema in self.kinds.items()},
        }


class Provenance(BaseModel):
    """Which node attempt produced an item."""

    created_by_node_id: str | None = None
    created_by_node_result_id: str | None = None


class CollectionStore(BaseModel):
    """Items of one kind for one run, in insertion order."""

    run_id: str
    kind: str
    updated_at: str
    items: list[dict[str, Any]] = Field(default_factory=list)


class GlobalEntityStore(BaseModel):
    """Items of a global kind shared by every run; each item carries its run_id."""

    kind: str
    updated_at: str
    items: list[dict[str, Any]] = Field(default_factory=list)
