"""Workspace persistence."""

from collectflow.db.locks import KeyedLocks
from collectflow.db.workspace import WorkspacePaths
from collectflow.db.workspace_store import WorkspaceStore

__all__ = ["KeyedLocks", "WorkspacePaths", "WorkspaceStore"]
