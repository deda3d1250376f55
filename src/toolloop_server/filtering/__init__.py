"""Semantic tool filtering.

This package provides the embedding-based scorer used by the tool
selector to rank tools by relevance to the recent conversation.
"""

from toolloop_server.filtering.scorer import Embedder, EmbeddingToolScorer

__all__ = ["Embedder", "EmbeddingToolScorer"]
