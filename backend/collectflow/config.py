"""Runtime configuration.

Values come from environment variables, optionally overlaid on a
workspace-local ``config.json``. Environment variables always win.
"""

import json
import logging
import os
from pathlib import Path

from pydantic import BaseModel

logger = logging.getLogger(__name__)

DEFAULT_BY = "cli"
WORKSPACE_DIR_NAME = ".collectflow"


class Settings(BaseModel):
    """Resolved settings for one process."""

    workspace_path: Path
    log_level: str = "INFO"
    default_by: str = DEFAULT_BY


def _read_local_config(config_path: Path) -> dict:
    try:
        with open(config_path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Ignoring {config_path}: expected a JSON object")
        return {}
    return data


def load_settings(workspace_path: Path | str | None = None) -> Settings:
    """Build settings from the environment and the workspace config file."""
    root = Path(workspace_path or os.getenv("COLLECTFLOW_WORKSPACE") or Path.cwd())
    local = _read_local_config(root / WORKSPACE_DIR_NAME / "config.json")
    default_by = os.getenv("COLLECTFLOW_BY") or local.get("default_by") or DEFAULT_BY
    return Settings(
        workspace_path=root,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        default_by=default_by,
    )


def resolve_by(explicit: str | None, settings: Settings | None = None) -> str:
    """Actor name for records and events: explicit, then configured, then ``cli``."""
    if explicit:
        return explicit
    if settings is not None and settings.default_by:
        return settings.default_by
    return DEFAULT_BY
