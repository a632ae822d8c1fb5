"""Chat model collaborator and its LiteLLM Proxy client."""

from __future__ import annotations

import logging
import os
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)

# Model used when none is configured.
DEFAULT_CHAT_MODEL: str = os.environ.get("CONTEXTENGINE_CHAT_MODEL", "groq/llama-3.3-70b-versatile")

ChatMessage = dict[str, str]


def proxy_headers(api_key: str) -> dict[str, str]:
    """JSON headers for the LiteLLM Proxy, with bearer auth when *api_key* is set."""
    headers: dict[str, str] = {"Content-Type": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    return headers


class ChatModel(Protocol):
    """Anything that turns a message list into an assistant reply."""

    async def chat(self, messages: list[ChatMessage]) -> str: ...


class LLMError(Exception):
    """Raised when the LLM proxy returns an error response."""

    def __init__(self, status_code: int, model: str, body: str) -> None:
        self.status_code = status_code
        self.model = model
        self.body = body
        # Truncate body for the message but keep it accessible via .body
        short = body[:500] if len(body) > 500 else body
        super().__init__(f"LiteLLM {status_code} for model={model}: {short}")


class LiteLLMClient:
    """HTTP client for the LiteLLM Proxy (OpenAI-compatible API)."""

    def __init__(
        self,
        base_url: str = "http://localhost:4000",
        api_key: str = "",
        model: str = DEFAULT_CHAT_MODEL,
        temperature: float = 0.0,
    ) -> None:
        self._model = model
        self._temperature = temperature
        self._client = httpx.AsyncClient(base_url=base_url.rstrip("/"), headers=proxy_headers(api_key), timeout=120.0)

    async def chat(self, messages: list[ChatMessage]) -> str:
        """Send *messages* to ``/v1/chat/completions`` and return the reply text."""
        payload: dict[str, object] = {
            "model": self._model,
            "messages": messages,
            "temperature": self._temperature,
        }
        logger.debug("llm_chat_request model=%s messages=%d", self._model, len(messages))

        resp = await self._client.post("/v1/chat/completions", json=payload)
        if resp.status_code >= 400:
            body = resp.text
            logger.error("LiteLLM error status=%d model=%s body=%s", resp.status_code, self._model, body[:1000])
            raise LLMError(resp.status_code, self._model, body)
        data: dict[str, object] = resp.json()

        choices = data.get("choices", [])
        if not isinstance(choices, list) or len(choices) == 0:
            return ""
        message = choices[0].get("message", {})
        content = message.get("content", "") if isinstance(message, dict) else ""
        return str(content or "")

    async def health(self) -> bool:
        """Check if the LiteLLM Proxy is healthy."""
        try:
            resp = await self._client.get("/health")
            return resp.status_code == 200
        except httpx.HTTPError:
            return False

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
