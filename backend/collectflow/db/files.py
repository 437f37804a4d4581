"""Low-level JSON file helpers.

Whole documents are written to a temp file beside the target and renamed
into place, so a reader sees either the old or the new document. Event lines
are appended with a single write call.
"""

import asyncio
import json
import os
import uuid
from pathlib import Path
from typing import Any


def _dump(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def read_json_sync(path: Path) -> Any:
    """Read a JSON document. Raises FileNotFoundError if absent."""
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def write_json_atomic_sync(path: Path, data: Any) -> None:
    """Write a JSON document via temp file and atomic rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}.tmp")
    try:
        with open(temp_path, "w", encoding="utf-8") as f:
            f.write(_dump(data))
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    finally:
        if temp_path.exists():
            temp_path.unlink()


def append_line_sync(path: Path, data: Any) -> None:
    """Append one JSON object as a newline-terminated line."""
    path.parent.mkdir(parents=True, exist_ok=True)
    line = json.dumps(data, ensure_ascii=False) + "\n"
    with open(path, "a", encoding="utf-8") as f:
        f.write(line)


def read_lines_sync(path: Path) -> list[Any]:
    """Read every complete JSON line of an NDJSON file.

    A trailing line without its newline is an interrupted append and is skipped.
    """
    with open(path, encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.endswith("\n") and line.strip()]


async def read_json(path: Path) -> Any:
    return await asyncio.to_thread(read_json_sync, path)


async def write_json_atomic(path: Path, data: Any) -> None:
    await asyncio.to_thread(write_json_atomic_sync, path, data)


async def append_line(path: Path, data: Any) -> None:
    await asyncio.to_thread(append_line_sync, path, data)


async def read_lines(path: Path) -> list[Any]:
    return await asyncio.to_thread(read_lines_sync, path)
