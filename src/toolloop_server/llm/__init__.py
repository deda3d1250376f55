"""LLM provider clients.

This package provides async clients for Ollama and for OpenAI-compatible
APIs. Both stream responses as provider-neutral deltas.
"""

from toolloop_server.llm.base import LLMClient
from toolloop_server.llm.ollama_client import OllamaClient
from toolloop_server.llm.openai_client import OpenAICompatibleClient
from toolloop_server.llm.types import ModelInfo

__all__ = ["LLMClient", "OllamaClient", "OpenAICompatibleClient", "ModelInfo"]
