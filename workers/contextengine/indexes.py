"""In-memory text and vector indexes over chunked workspace files.

``Bm25TextIndex`` ranks chunks with BM25 keyword scoring; ``EmbeddingVectorIndex``
ranks them by cosine similarity of LiteLLM embeddings. Both cover a single
workspace, accept scope tags without using them and treat the directory
argument as a path-prefix filter.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import TYPE_CHECKING

import bm25s
import httpx
import numpy as np
import structlog

from contextengine._tree_sitter_common import list_source_files
from contextengine.chunking import CodeChunker
from contextengine.llm import proxy_headers

if TYPE_CHECKING:
    from contextengine.models import BranchAndDir, Chunk

logger = structlog.get_logger()


def read_workspace_documents(workspace_path: str, file_extensions: list[str] | None = None) -> dict[str, str]:
    """Read recognised source files under *workspace_path* into ``{rel_path: text}``."""
    documents: dict[str, str] = {}
    for rel_path in list_source_files(workspace_path, file_extensions):
        try:
            with open(os.path.join(workspace_path, rel_path), encoding="utf-8", errors="replace") as f:
                documents[rel_path] = f.read()
        except OSError:
            logger.debug("skipping unreadable file", path=rel_path)
    return documents


def _in_directory(filepath: str, directory: str | None) -> bool:
    if not directory:
        return True
    prefix = directory.rstrip("/") + "/"
    return filepath.startswith(prefix) or filepath == directory.rstrip("/")


def _chunk_documents(chunker: CodeChunker, documents: Mapping[str, str]) -> list[Chunk]:
    chunks: list[Chunk] = []
    for filepath, contents in documents.items():
        chunks.extend(chunker.chunk_text(filepath, contents))
    return chunks


class Bm25TextIndex:
    """BM25 keyword index over chunks."""

    def __init__(self, chunker: CodeChunker | None = None) -> None:
        self._chunker = chunker or CodeChunker()
        self._chunks: list[Chunk] = []
        self._bm25: bm25s.BM25 | None = None

    def __len__(self) -> int:
        return len(self._chunks)

    def build(self, documents: Mapping[str, str]) -> int:
        """Chunk and index *documents* (``{filepath: contents}``), replacing prior contents.

        Returns the number of indexed chunks.
        """
        self._chunks = _chunk_documents(self._chunker, documents)
        if not self._chunks:
            self._bm25 = None
            logger.info("bm25 index empty", files=len(documents))
            return 0

        corpus_tokens = bm25s.tokenize([c.content for c in self._chunks])
        bm25 = bm25s.BM25()
        bm25.index(corpus_tokens)
        self._bm25 = bm25
        logger.info("bm25 index built", files=len(documents), chunks=len(self._chunks))
        return len(self._chunks)

    async def retrieve(
        self,
        n: int,
        terms: list[str],
        tags: list[BranchAndDir],
        directory: str | None = None,
    ) -> list[Chunk]:
        if self._bm25 is None or not terms or n <= 0:
            return []

        n_chunks = len(self._chunks)
        query_tokens = bm25s.tokenize([" ".join(terms)])
        results, scores = self._bm25.retrieve(query_tokens, k=n_chunks)

        hits: list[Chunk] = []
        for idx, score in zip(results[0], scores[0], strict=False):
            if float(score) <= 0.0:
                continue
            chunk = self._chunks[int(idx)]
            if not _in_directory(chunk.filepath, directory):
                continue
            hits.append(chunk)
            if len(hits) >= n:
                break
        return hits


class EmbeddingVectorIndex:
    """Cosine-similarity index over chunk embeddings from the LiteLLM Proxy."""

    def __init__(
        self,
        litellm_url: str = "http://localhost:4000",
        litellm_key: str = "",
        embedding_model: str = "text-embedding-3-small",
        chunker: CodeChunker | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._chunker = chunker or CodeChunker()
        self._model = embedding_model
        self._chunks: list[Chunk] = []
        self._matrix: np.ndarray | None = None
        if client is None:
            client = httpx.AsyncClient(
                base_url=litellm_url.rstrip("/"), headers=proxy_headers(litellm_key), timeout=120.0
            )
        self._client = client

    def __len__(self) -> int:
        return len(self._chunks)

    async def build(self, documents: Mapping[str, str]) -> int:
        """Chunk and embed *documents*, replacing prior contents. Returns the chunk count."""
        chunks = _chunk_documents(self._chunker, documents)
        if not chunks:
            self._chunks, self._matrix = [], None
            return 0
        matrix = await self._embed_texts([c.content for c in chunks])
        self._chunks, self._matrix = chunks, matrix
        logger.info("embedding index built", files=len(documents), chunks=len(chunks), model=self._model)
        return len(chunks)

    async def retrieve(
        self,
        query: str,
        n: int,
        tags: list[BranchAndDir],
        directory: str | None = None,
    ) -> list[Chunk]:
        if self._matrix is None or not query.strip() or n <= 0:
            return []

        query_vec = (await self._embed_texts([query]))[0]
        scores = self._cosine_similarity(query_vec, self._matrix)

        hits: list[Chunk] = []
        for idx in np.argsort(-scores, kind="stable"):
            chunk = self._chunks[int(idx)]
            if not _in_directory(chunk.filepath, directory):
                continue
            hits.append(chunk)
            if len(hits) >= n:
                break
        return hits

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def _embed_texts(self, texts: list[str]) -> np.ndarray:
        """Batch-embed texts via the LiteLLM /v1/embeddings endpoint."""
        resp = await self._client.post("/v1/embeddings", json={"input": texts, "model": self._model})
        resp.raise_for_status()
        data = resp.json()

        # Sort by index to ensure correct ordering
        embeddings_data: list[dict[str, object]] = data.get("data", [])
        embeddings_data.sort(key=lambda d: int(d.get("index", 0)))

        vectors = [item["embedding"] for item in embeddings_data]
        return np.array(vectors, dtype=np.float32)

    @staticmethod
    def _cosine_similarity(query_vec: np.ndarray, matrix: np.ndarray) -> np.ndarray:
        query_norm = np.linalg.norm(query_vec)
        if query_norm == 0.0:
            return np.zeros(matrix.shape[0], dtype=np.float32)
        matrix_norms = np.linalg.norm(matrix, axis=1)
        matrix_norms = np.where(matrix_norms == 0.0, 1.0, matrix_norms)
        return np.dot(matrix, query_vec) / (matrix_norms * query_norm)
