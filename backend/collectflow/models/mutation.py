"""Pydantic models for workflow mutations."""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


class MutationStatus(str, Enum):
    """A mutation moves forward only: proposed, then applied or rejected."""

    PROPOSED = "proposed"
    APPLIED = "applied"
    REJECTED = "rejected"


class PatchOperation(BaseModel):
    """One JSON Patch (RFC 6902) operation."""

    op: Literal["add", "remove", "replace", "move", "copy", "test"]
    path: str
    value: Any = None
    from_: str | None = Field(default=None, alias="from")

    model_config = {"populate_by_name": True}

    def to_document(self) -> dict[str, Any]:
        # exclude_unset keeps an explicit "value": null
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


class MutationTarget(BaseModel):
    type: Literal["workflow"] = "workflow"
    workflow_id: str
    from_version: str


class MutationRecord(BaseModel):
    """A proposed structural change to a workflow version."""

    mutation_id: str
    target: MutationTarget
    patch: list[dict[str, Any]]
    reason: str
    status: MutationStatus = MutationStatus.PROPOSED
    created_by: str
    created_at: str
    applied_to_version: str | None = None
