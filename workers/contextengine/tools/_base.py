"""Base types for the search tools used by tool-based retrieval."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol


@dataclass(frozen=True)
class ToolDefinition:
    """Declarative description of a tool (name, description, JSON Schema parameters)."""

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)

    def describe(self) -> str:
        """One prompt line: name, description and accepted arguments."""
        props = self.parameters.get("properties", {})
        required = set(self.parameters.get("required", []))
        args = ", ".join(f"{name}{'' if name in required else '?'}" for name in props)
        return f"- {self.name}({args}): {self.description}"


@dataclass
class ToolResult:
    """Result of one tool run.

    ``files`` maps workspace-relative paths to the part of ``output`` that
    concerns that file, so callers can turn results into per-file chunks.
    """

    output: str
    error: str = ""
    success: bool = True
    files: dict[str, str] = field(default_factory=dict)

    @classmethod
    def failure(cls, error: str) -> ToolResult:
        return cls(output="", error=error, success=False)


class ToolExecutor(Protocol):
    """Interface that all tool implementations satisfy."""

    async def execute(self, arguments: dict[str, Any], workspace_path: str) -> ToolResult: ...


def resolve_safe_path(
    workspace_path: str,
    relative_path: str,
    *,
    must_exist: bool = False,
    must_be_file: bool = False,
    must_be_dir: bool = False,
) -> tuple[Path, ToolResult | None]:
    """Resolve *relative_path* under *workspace_path* and validate constraints.

    Returns ``(resolved_path, None)`` on success or ``(Path(), error_result)``
    when a constraint is violated.
    """
    workspace = Path(workspace_path).resolve()
    target = (workspace / relative_path).resolve()

    if not target.is_relative_to(workspace):
        return Path(), ToolResult.failure("path traversal blocked")

    if must_exist and not target.exists():
        return Path(), ToolResult.failure(f"not found: {relative_path}")

    if must_be_file and not target.is_file():
        return Path(), ToolResult.failure(f"file not found: {relative_path}")

    if must_be_dir and not target.is_dir():
        return Path(), ToolResult.failure(f"not a directory: {relative_path}")

    return target, None
