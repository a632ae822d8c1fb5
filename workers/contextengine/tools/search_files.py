"""Built-in tool: search file contents with regex."""

from __future__ import annotations

import asyncio
import logging
from pathlib import PurePosixPath
from typing import Any

from contextengine.constants import MAX_SEARCH_MATCHES, TOOL_TIMEOUT_SECONDS
from contextengine.tools._base import ToolDefinition, ToolExecutor, ToolResult, resolve_safe_path

logger = logging.getLogger(__name__)

DEFINITION = ToolDefinition(
    name="search_files",
    description="Search file contents using a regex pattern. Returns matching lines with file paths and line numbers.",
    parameters={
        "type": "object",
        "properties": {
            "pattern": {
                "type": "string",
                "description": "Regular expression pattern to search for.",
            },
            "path": {
                "type": "string",
                "description": "Subdirectory to search in (relative to workspace). Defaults to entire workspace.",
            },
            "include": {
                "type": "string",
                "description": "Glob pattern to filter files (e.g. '*.py').",
            },
        },
        "required": ["pattern"],
    },
)


def group_matches(lines: list[str]) -> dict[str, str]:
    """Group ``path:line:text`` grep lines by normalized path, keeping match order."""
    grouped: dict[str, list[str]] = {}
    for line in lines:
        parts = line.split(":", 2)
        if len(parts) != 3:
            continue
        path = str(PurePosixPath(parts[0]))
        grouped.setdefault(path, []).append(f"{parts[1]}: {parts[2]}")
    return {path: "\n".join(matches) for path, matches in grouped.items()}


class SearchFilesTool(ToolExecutor):
    """Search file contents with grep."""

    async def execute(self, arguments: dict[str, Any], workspace_path: str) -> ToolResult:
        pattern = str(arguments.get("pattern", ""))
        sub_path = str(arguments.get("path", ".") or ".")
        include = str(arguments.get("include", "") or "")

        if not pattern:
            return ToolResult.failure("pattern is required")
        _, err = resolve_safe_path(workspace_path, sub_path, must_exist=True)
        if err is not None:
            return err

        cmd = ["grep", "-rn", "--color=never"]
        if include:
            cmd.extend([f"--include={include}"])
        cmd.extend(["-m", str(MAX_SEARCH_MATCHES), "--", pattern, sub_path])

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=workspace_path,
            )
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=TOOL_TIMEOUT_SECONDS)
        except TimeoutError:
            return ToolResult.failure("search timed out")
        except OSError as exc:
            return ToolResult.failure(str(exc))

        output = stdout.decode("utf-8", errors="replace").strip()

        # grep returns exit 1 when no matches (not an error)
        if proc.returncode == 1 and not output:
            return ToolResult(output="no matches found")

        if proc.returncode not in (0, 1):
            err_text = stderr.decode("utf-8", errors="replace").strip()
            return ToolResult.failure(err_text or f"grep exit code {proc.returncode}")

        lines = output.splitlines()
        truncated = len(lines) > MAX_SEARCH_MATCHES
        lines = lines[:MAX_SEARCH_MATCHES]
        output = "\n".join(lines)
        if truncated:
            output += f"\n\n... truncated to {MAX_SEARCH_MATCHES} matches"
        logger.debug("search_files pattern=%r matches=%d", pattern, len(lines))

        return ToolResult(output=output, files=group_matches(lines))
