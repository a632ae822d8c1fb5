"""Workspace search tools for tool-based retrieval.

Provides a ToolRegistry that holds the built-in, read-only tools the chat
model may choose from when it plans a search.
"""

from __future__ import annotations

import logging
from typing import Any

from contextengine.tools._base import ToolDefinition, ToolExecutor, ToolResult

logger = logging.getLogger(__name__)

__all__ = [
    "ToolDefinition",
    "ToolExecutor",
    "ToolRegistry",
    "ToolResult",
    "build_default_registry",
]


class ToolRegistry:
    """Container for tool definitions and their executors."""

    def __init__(self) -> None:
        self._tools: dict[str, tuple[ToolDefinition, ToolExecutor]] = {}

    def register(self, definition: ToolDefinition, executor: ToolExecutor) -> None:
        """Register a tool definition with its executor."""
        self._tools[definition.name] = (definition, executor)

    def describe(self) -> str:
        """Render all tools as prompt lines, sorted by name."""
        return "\n".join(self._tools[name][0].describe() for name in self.tool_names)

    async def execute(self, name: str, arguments: dict[str, Any], workspace_path: str) -> ToolResult:
        """Execute a tool by name. Returns error result if tool is unknown."""
        entry = self._tools.get(name)
        if entry is None:
            logger.warning("unknown tool requested: %s", name)
            return ToolResult.failure(f"unknown tool: {name}")
        _, executor = entry
        return await executor.execute(arguments, workspace_path)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    @property
    def tool_names(self) -> list[str]:
        """Return sorted list of registered tool names."""
        return sorted(self._tools.keys())


def build_default_registry() -> ToolRegistry:
    """Create a ToolRegistry with all built-in tools registered."""
    from contextengine.tools import read_file, search_files

    registry = ToolRegistry()
    registry.register(read_file.DEFINITION, read_file.ReadFileTool())
    registry.register(search_files.DEFINITION, search_files.SearchFilesTool())
    return registry
