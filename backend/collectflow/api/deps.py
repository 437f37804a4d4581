"""FastAPI dependencies."""

from fastapi import Request

from collectflow.db.workspace_store import WorkspaceStore


def get_store(request: Request) -> WorkspaceStore:
    """The workspace store attached to the running app."""
    return request.app.state.store
