"""Built-in tool: read file contents with optional offset and limit."""

from __future__ import annotations

import logging
from typing import Any

from contextengine.chunking import split_lines
from contextengine.tools._base import ToolDefinition, ToolExecutor, ToolResult, resolve_safe_path

logger = logging.getLogger(__name__)

DEFINITION = ToolDefinition(
    name="read_file",
    description="Read the contents of a file, optionally a line range of it.",
    parameters={
        "type": "object",
        "properties": {
            "file_path": {
                "type": "string",
                "description": "Path to the file to read (relative to workspace).",
            },
            "offset": {
                "type": "integer",
                "description": "Line number to start reading from (1-based). Defaults to 1.",
            },
            "limit": {
                "type": "integer",
                "description": "Maximum number of lines to return. Defaults to all.",
            },
        },
        "required": ["file_path"],
    },
)


class ReadFileTool(ToolExecutor):
    """Read a file's contents with optional line offset and limit."""

    async def execute(self, arguments: dict[str, Any], workspace_path: str) -> ToolResult:
        rel = str(arguments.get("file_path", ""))
        target, err = resolve_safe_path(workspace_path, rel, must_be_file=True)
        if err is not None:
            return err

        try:
            text = target.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            return ToolResult.failure(str(exc))

        lines = split_lines(text)
        try:
            offset = max(int(arguments.get("offset") or 1), 1)
            limit = arguments.get("limit")
            limit = int(limit) if limit is not None else None
        except (TypeError, ValueError):
            return ToolResult.failure("offset and limit must be integers")

        start = offset - 1
        end = start + limit if limit is not None else len(lines)
        selected = "".join(lines[start:end])

        return ToolResult(output=selected, files={rel: selected} if selected else {})
