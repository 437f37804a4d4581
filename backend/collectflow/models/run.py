"""Pydantic models for runs and node results."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class RunStatus(str, Enum):
    """Lifecycle of a run. Only ``running`` may change."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not RunStatus.RUNNING


class RunRecord(BaseModel):
    """One execution of a specific workflow version."""

    run_id: str
    name: str | None = None
    workflow_id: str
    workflow_version_id: str
    status: RunStatus = RunStatus.RUNNING
    input: dict[str, Any] = Field(default_factory=dict)
    created_at: str
    final_answer: str | None = None


class NodeResultStatus(str, Enum):
    """Outcome of one node execution attempt."""

    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"
    NEEDS_HUMAN = "needs_human"


class NodeResultWrite(BaseModel):
    """Items a node attempt wrote into one collection kind."""

    kind: str
    item_ids: list[str] = Field(default_factory=list)


class NodeResultRecord(BaseModel):
    """Lineage record for a node attempt within a run."""

    node_result_id: str
    run_id: str
    node_id: str
    status: NodeResultStatus
    started_at: str
    completed_at: str | None = None
    output: str | None = None
    writes: list[NodeResultWrite] = Field(default_factory=list)
