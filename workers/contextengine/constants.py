"""Centralized constants for the context engine.

Defaults that several modules share are collected here so retrieval,
fusion and graph traversal agree on the same numbers.
"""

from __future__ import annotations

# -- Token estimation --------------------------------------------------------
CHARS_PER_TOKEN = 4  # Rough heuristic: 1 token ~ 4 characters.

# -- Retrieval ---------------------------------------------------------------
DEFAULT_N_RETRIEVE = 25  # Advisory per-source cap.
DEFAULT_N_FINAL = 30  # Chunks kept after fusion.
MAX_N_RETRIEVE = 500

# -- Chunking ----------------------------------------------------------------
DEFAULT_MAX_CHUNK_LINES = 100

# -- LSP definitions ---------------------------------------------------------
LSP_CONTEXT_LINES = 5  # Lines added above and below a target range.
LSP_MAX_REFERENCES_PER_SYMBOL = 10
LSP_MIN_SYMBOL_LENGTH = 3

# -- Dependency graph --------------------------------------------------------
RELATED_MAX_DEPTH = 2
RELATED_MAX_FILES = 100
STATS_TOP_N = 10

# -- Retrieval log export ----------------------------------------------------
LOG_API_BATCH_SIZE = 10
LOG_API_TIMEOUT_SECONDS = 30.0

# -- Tools -------------------------------------------------------------------
MAX_SEARCH_MATCHES = 100  # search_files: max grep matches.
TOOL_TIMEOUT_SECONDS = 30
