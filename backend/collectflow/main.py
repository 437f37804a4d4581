"""FastAPI application entry point."""

import logging
import os
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from collectflow import __version__
from collectflow.api import mutations, runs, workflows
from collectflow.config import load_settings
from collectflow.db.workspace_store import WorkspaceStore
from collectflow.errors import CollectflowError

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
    )


async def collectflow_error_handler(request: Request, exc: CollectflowError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def os_error_handler(request: Request, exc: OSError) -> JSONResponse:
    logger.exception(f"I/O failure on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": {"type": "io_error", "message": str(exc), "details": {}}},
    )


def create_app(workspace_path: Path | str | None = None) -> FastAPI:
    """Build the read API over the workspace at ``workspace_path``.

    Without a path the workspace comes from ``COLLECTFLOW_WORKSPACE`` or the
    current directory. The workspace does not need to exist yet; requests
    made before it is initialized answer 409.
    """
    settings = load_settings(workspace_path)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if app.state.store.workspace_exists():
            logger.info(f"Serving workspace at {settings.workspace_path}")
        else:
            logger.warning(f"No workspace initialized at {settings.workspace_path}")
        yield

    app = FastAPI(
        title="collectflow",
        description="Collection-driven workflows with versioned mutations and run lineage",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = WorkspaceStore(settings.workspace_path)

    # CORS middleware - allow any localhost port for local viewers
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=r"^http://localhost(:\d+)?$",
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.add_exception_handler(CollectflowError, collectflow_error_handler)
    app.add_exception_handler(OSError, os_error_handler)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy"}

    app.include_router(workflows.router, prefix="/api/v1", tags=["workflows"])
    app.include_router(runs.router, prefix="/api/v1", tags=["runs"])
    app.include_router(mutations.router, prefix="/api/v1", tags=["mutations"])
    return app


configure_logging()
app = create_app()
