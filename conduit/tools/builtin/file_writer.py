from __future__ import annotations

import asyncio
import logging
import os
import re
import time
from datetime import datetime, timezone

from conduit.tools.base import Tool, ToolContext

logger = logging.getLogger(__name__)

RESERVED_NAMES = {
    "CON", "PRN", "AUX", "NUL",
    *(f"COM{i}" for i in range(1, 10)),
    *(f"LPT{i}" for i in range(1, 10)),
}
_INVALID_CHARS = re.compile(r'[<>:"|?*\x00-\x1f]')


def validate_filename(filename: str) -> None:
    if ".." in filename or "/" in filename or "\\" in filename:
        raise ValueError(
            "Filename cannot contain path separators or parent directory references"
        )
    stem = os.path.splitext(filename)[0].upper()
    if stem in RESERVED_NAMES:
        raise ValueError(f"Filename cannot be a reserved system name: {stem}")
    if _INVALID_CHARS.search(filename):
        raise ValueError("Filename contains invalid characters")


class WriteFileTool(Tool):
    """Write text content to a new file, never overwriting an existing one."""

    @property
    def name(self) -> str:
        return "write_file"

    @property
    def description(self) -> str:
        return (
            "Write content to a file. If a file with the same name exists, a "
            "timestamp is appended to the new file's name instead of overwriting."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "filename": {
                    "type": "string",
                    "minLength": 1,
                    "description": "Name of the file to create (no directories)",
                },
                "content": {
                    "type": "string",
                    "description": "Text content to write",
                },
                "directory": {
                    "type": "string",
                    "default": ".",
                    "description": "Directory to write into, relative to the working directory",
                },
            },
            "required": ["filename", "content"],
        }

    def format_call_preview(self, params: dict) -> str | None:
        return f"Writing file: {params.get('filename', '')}"

    async def execute(self, params: dict, context: ToolContext) -> str:
        filename = params["filename"]
        validate_filename(filename)

        directory = os.path.join(context.cwd, params.get("directory") or ".")
        path, size = await asyncio.to_thread(
            _write_new_file, directory, filename, params["content"]
        )
        logger.info("Wrote %d bytes to %s", size, path)
        return (
            "**File written successfully:**\n"
            f"- **Path:** {os.path.relpath(path, context.cwd)}\n"
            f"- **Size:** {size} bytes\n"
            f"- **Created:** {datetime.now(timezone.utc).isoformat()}\n\n"
            "The file has been saved with the specified content."
        )


def _write_new_file(directory: str, filename: str, content: str) -> tuple[str, int]:
    os.makedirs(directory, exist_ok=True)

    path = os.path.join(directory, filename)
    if os.path.exists(path):
        stem, ext = os.path.splitext(filename)
        path = os.path.join(directory, f"{stem}_{int(time.time() * 1000)}{ext}")

    real_dir = os.path.realpath(directory)
    if os.path.commonpath([os.path.realpath(path), real_dir]) != real_dir:
        raise ValueError("Cannot write files outside the specified directory")

    try:
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
    except PermissionError as e:
        raise PermissionError(
            "Permission denied: Cannot write to the specified location"
        ) from e
    return path, os.path.getsize(path)
