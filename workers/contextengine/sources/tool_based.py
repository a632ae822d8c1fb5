"""Tool-based search source: the chat model plans searches, built-in tools run them."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from contextengine.json_utils import safe_json_loads
from contextengine.models import Chunk

if TYPE_CHECKING:
    from contextengine.llm import ChatModel
    from contextengine.models import RetrievalArguments
    from contextengine.tools import ToolRegistry

logger = structlog.get_logger()

_PLAN_SYSTEM = (
    "You are a code search planner. Choose tools that find code relevant to the "
    "user's question. Reply with JSON only, in the form "
    '{"tools": [{"name": "<tool name>", "args": {...}}]}. '
    "Use at most {max_calls} tool calls.\n\nAvailable tools:\n{tools}"
)


def parse_tool_calls(reply: str) -> list[tuple[str, dict[str, Any]]] | None:
    """Parse the planner reply into ``(name, args)`` pairs.

    Markdown code fences around the JSON are tolerated. Returns ``None`` when
    the reply is not a JSON object with a ``tools`` list.
    """
    text = reply.strip()
    if text.startswith("```"):
        text = text.strip("`")
        text = text.removeprefix("json").strip()
    data = safe_json_loads(text, None)
    if not isinstance(data, dict) or not isinstance(data.get("tools"), list):
        return None

    calls: list[tuple[str, dict[str, Any]]] = []
    for item in data["tools"]:
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            continue
        args = item.get("args")
        calls.append((item["name"], args if isinstance(args, dict) else {}))
    return calls


def tool_chunk(filepath: str, content: str, tool_name: str, index: int) -> Chunk:
    """Chunk for tool output about one file; identified by the file URI."""
    return Chunk(
        content=content,
        filepath=filepath,
        start_line=-1,
        end_line=-1,
        digest=f"file:///{filepath.lstrip('/')}",
        index=index,
        metadata={"source": "tool_based_search", "tool": tool_name},
    )


class ToolBasedSource:
    """Lets the chat model pick search tools and turns their output into chunks.

    A reply that cannot be parsed yields no chunks; a failing tool is logged
    and skipped.
    """

    def __init__(self, llm: ChatModel, registry: ToolRegistry, workspace_path: str, max_calls: int = 5) -> None:
        self._llm = llm
        self._registry = registry
        self._workspace_path = workspace_path
        self._max_calls = max_calls

    async def retrieve(self, args: RetrievalArguments) -> list[Chunk]:
        if not args.query.strip():
            return []

        system = _PLAN_SYSTEM.replace("{max_calls}", str(self._max_calls)).replace("{tools}", self._registry.describe())
        reply = await self._llm.chat(
            [
                {"role": "system", "content": system},
                {"role": "user", "content": args.query},
            ]
        )
        calls = parse_tool_calls(reply)
        if calls is None:
            logger.warning("unparsable tool selection", reply=reply[:200])
            return []

        chunks: list[Chunk] = []
        seen: set[str] = set()
        for name, tool_args in calls[: self._max_calls]:
            result = await self._registry.execute(name, tool_args, self._workspace_path)
            if not result.success:
                logger.debug("tool call failed", tool=name, error=result.error)
                continue
            for filepath, content in result.files.items():
                chunk = tool_chunk(filepath, content, name, len(chunks))
                if chunk.digest in seen:
                    continue
                seen.add(chunk.digest)
                chunks.append(chunk)

        logger.debug("tool based search completed", calls=len(calls), chunks=len(chunks))
        return chunks[: args.n_retrieve]
