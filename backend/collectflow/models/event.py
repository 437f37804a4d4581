"""Pydantic models for run events."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Event types written by collectflow itself. Callers may log others."""

    RUN_STARTED = "run_started"
    STEP_STARTED = "step_started"
    COLLECTION_WRITTEN = "collection_written"
    STEP_COMPLETED = "step_completed"
    RUN_COMPLETED = "run_completed"


class EventRecord(BaseModel):
    """A single line of a run's append-only event log."""

    ts: str
    type: str
    by: str
    data: dict[str, Any] = Field(default_factory=dict)
