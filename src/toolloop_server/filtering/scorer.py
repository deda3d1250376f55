"""Embedding-based tool relevance scoring.

Every tool is embedded once as ``"<name>: <description>"`` followed by its
parameter names. At selection time the last few conversation turns are
embedded and tools are ranked by cosine similarity. The index is rebuilt
only when the catalog fingerprint changes.
"""

import logging
import time
from collections import OrderedDict
from typing import Any, Protocol

import numpy as np

from toolloop_server.core.catalog import CatalogSnapshot
from toolloop_server.core.errors import SelectionDegraded
from toolloop_server.core.types import ScoredTool, ScoreResult, ToolSchema

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_MESSAGES = 3
DEFAULT_MAX_CONTEXT_CHARS = 2000
DEFAULT_CACHE_SIZE = 256


class Embedder(Protocol):
    async def embed(self, texts: list[str], model: str) -> list[list[float]]: ...


def tool_text(tool: ToolSchema) -> str:
    """Text used to embed a tool."""
    text = f"{tool.name}: {tool.description or f'Tool: {tool.name}'}"
    params = list((tool.input_schema.get("properties") or {}).keys())
    if params:
        text += f" Parameters: {', '.join(params)}"
    return text


def _normalize(matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=-1, keepdims=True)
    return matrix / np.maximum(norms, 1e-12)


class EmbeddingToolScorer:
    """SemanticScorer backed by an embedding model.

    Args:
        embedder: Anything with ``async embed(texts, model)``, usually the
            LLM client
        model: Embedding model name
        context_messages: Number of recent non-system turns to embed
        max_context_chars: Character cap for the embedded context, newest
            text is kept
        cache_size: Number of query embeddings to keep
    """

    def __init__(
        self,
        embedder: Embedder,
        model: str,
        context_messages: int = DEFAULT_CONTEXT_MESSAGES,
        max_context_chars: int = DEFAULT_MAX_CONTEXT_CHARS,
        cache_size: int = DEFAULT_CACHE_SIZE,
    ):
        self.embedder = embedder
        self.model = model
        self.context_messages = context_messages
        self.max_context_chars = max_context_chars
        self.cache_size = cache_size

        self._tool_names: list[str] = []
        self._matrix: np.ndarray | None = None
        self._fingerprint: str | None = None
        self._cache: OrderedDict[str, np.ndarray] = OrderedDict()
        self._cache_hits = 0
        self._cache_misses = 0
        self._last_index_ms: float | None = None
        self._last_error: str | None = None

    @property
    def is_ready(self) -> bool:
        return self._matrix is not None and len(self._tool_names) > 0

    async def sync(self, snapshot: CatalogSnapshot) -> bool:
        """Re-index the catalog if it changed since the last sync.

        Indexing failures are logged and leave the scorer not ready, so
        selection falls back to the unfiltered tool list.

        Returns:
            True if the scorer is ready afterwards
        """
        fingerprint = snapshot.fingerprint()
        if fingerprint == self._fingerprint:
            return self.is_ready

        # Tool names are unique for the model, first server wins
        tools: dict[str, ToolSchema] = {}
        for _, tool in snapshot.iter_tools():
            tools.setdefault(tool.name, tool)

        if not tools:
            self.reset()
            self._fingerprint = fingerprint
            return False

        start = time.perf_counter()
        try:
            vectors = await self.embedder.embed(
                [tool_text(t) for t in tools.values()], self.model
            )
            matrix = np.asarray(vectors, dtype=np.float32)
            if matrix.ndim != 2 or matrix.shape[0] != len(tools):
                raise ValueError(
                    f"Expected {len(tools)} embeddings, got shape {matrix.shape}"
                )
        except Exception as e:
            self.reset()
            self._last_error = str(e)
            logger.error(f"Failed to index {len(tools)} tools for filtering: {e}")
            return False

        self._tool_names = list(tools.keys())
        self._matrix = _normalize(matrix)
        self._fingerprint = fingerprint
        self._last_index_ms = (time.perf_counter() - start) * 1000
        self._last_error = None
        self._cache.clear()
        logger.info(
            f"Indexed {len(self._tool_names)} tools in {self._last_index_ms:.0f}ms"
        )
        return True

    def context_text(self, turns: list[dict[str, Any]]) -> str:
        """Join the recent user and assistant turns used as the query."""
        texts = [
            str(turn.get("content") or "")
            for turn in turns
            if turn.get("role") in ("user", "assistant") and turn.get("content")
        ]
        text = "\n".join(texts[-self.context_messages :])
        return text[-self.max_context_chars :]

    async def score(
        self, turns: list[dict[str, Any]], top_k: int, min_score: float
    ) -> ScoreResult:
        """Rank indexed tools against the recent conversation.

        Raises:
            SelectionDegraded: If the scorer is not indexed or there is no
                conversation text to score against
        """
        if self._matrix is None:
            raise SelectionDegraded("Tool index is not ready")

        start = time.perf_counter()
        query = self.context_text(turns)
        if not query.strip():
            raise SelectionDegraded("No conversation text to score against")

        query_vector = await self._embed_query(query)
        scores = self._matrix @ query_vector

        ranked = np.argsort(-scores)
        tools = []
        for i in ranked:
            score = float(scores[i])
            if score < min_score or len(tools) >= top_k:
                break
            tools.append(ScoredTool(tool_name=self._tool_names[i], score=score))

        duration_ms = (time.perf_counter() - start) * 1000
        logger.debug(f"Scored {len(self._tool_names)} tools in {duration_ms:.1f}ms")
        return ScoreResult(tools=tools, duration_ms=duration_ms)

    async def _embed_query(self, query: str) -> np.ndarray:
        cached = self._cache.get(query)
        if cached is not None:
            self._cache.move_to_end(query)
            self._cache_hits += 1
            return cached

        self._cache_misses += 1
        vectors = await self.embedder.embed([query], self.model)
        vector = _normalize(np.asarray(vectors[0], dtype=np.float32))
        self._cache[query] = vector
        if len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)
        return vector

    def clear_cache(self) -> None:
        self._cache.clear()
        self._cache_hits = 0
        self._cache_misses = 0
        logger.info("Tool filter cache cleared")

    def reset(self) -> None:
        """Drop the index so the next sync re-embeds every tool."""
        self._tool_names = []
        self._matrix = None
        self._fingerprint = None
        self._cache.clear()

    def stats(self) -> dict[str, Any]:
        return {
            "ready": self.is_ready,
            "model": self.model,
            "indexed_tools": len(self._tool_names),
            "cache_size": len(self._cache),
            "cache_hits": self._cache_hits,
            "cache_misses": self._cache_misses,
            "last_index_ms": self._last_index_ms,
            "last_error": self._last_error,
        }
