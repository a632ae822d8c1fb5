"""Engine configuration loaded from environment variables."""

from __future__ import annotations

import os

from contextengine.constants import DEFAULT_N_FINAL, DEFAULT_N_RETRIEVE, LOG_API_BATCH_SIZE
from contextengine.llm import DEFAULT_CHAT_MODEL
from contextengine.models import RetrievalSourceConfig, SourceName
from contextengine.retrieval_logger import RetrievalLoggerConfig

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


def env_flag(name: str, default: bool) -> bool:
    """Read a boolean env var; unset or unrecognized values give *default*."""
    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    return default


class EngineSettings:
    """Configuration for the context engine, loaded from environment variables.

    Prefix: CONTEXTENGINE_ for engine-specific settings.
    Falls back to shared env vars (LITELLM_URL, LITELLM_MASTER_KEY) for infrastructure.
    """

    litellm_url: str
    litellm_api_key: str
    log_level: str
    log_service: str
    n_retrieve: int
    n_final: int

    def __init__(self) -> None:
        self.litellm_url = os.environ.get("LITELLM_URL", "http://localhost:4000")
        self.litellm_api_key = os.environ.get("LITELLM_MASTER_KEY", "")
        self.log_level = os.environ.get("CONTEXTENGINE_LOG_LEVEL", "info")
        self.log_service = os.environ.get("CONTEXTENGINE_LOG_SERVICE", "context-engine")
        self.log_json = env_flag("CONTEXTENGINE_LOG_JSON", True)
        self.n_retrieve = int(os.environ.get("CONTEXTENGINE_N_RETRIEVE", str(DEFAULT_N_RETRIEVE)))
        self.n_final = int(os.environ.get("CONTEXTENGINE_N_FINAL", str(DEFAULT_N_FINAL)))
        self.chat_model = os.environ.get("CONTEXTENGINE_CHAT_MODEL", DEFAULT_CHAT_MODEL)
        self.embedding_model = os.environ.get("CONTEXTENGINE_EMBEDDING_MODEL", "text-embedding-3-small")

        # Retrieval metrics export
        self.log_api_endpoint = os.environ.get("CONTEXTENGINE_LOG_API_ENDPOINT", "")
        self.log_api_key = os.environ.get("CONTEXTENGINE_LOG_API_KEY", "")
        self.log_api_batch_size = int(os.environ.get("CONTEXTENGINE_LOG_API_BATCH_SIZE", str(LOG_API_BATCH_SIZE)))

        defaults = RetrievalSourceConfig()
        self.enabled_sources: dict[SourceName, bool] = {
            name: env_flag(f"CONTEXTENGINE_ENABLE_{name.value.upper()}", defaults.is_enabled(name))
            for name in SourceName
        }

    def source_config(self) -> RetrievalSourceConfig:
        """Source enable flags as a RetrievalSourceConfig."""
        return RetrievalSourceConfig(**{f"enable_{name.value}": on for name, on in self.enabled_sources.items()})

    def retrieval_logger_config(self) -> RetrievalLoggerConfig:
        return RetrievalLoggerConfig(
            api_endpoint=self.log_api_endpoint,
            api_key=self.log_api_key,
            api_batch_size=self.log_api_batch_size,
        )
