"""Provider-neutral interface for LLM clients.

Both clients accept the neutral transcript produced by
``core.history.build_transcript`` (OpenAI message shape, tool call
arguments as JSON strings) and stream ``Delta`` objects back.
"""

from typing import Any, AsyncIterator, Protocol

from toolloop_server.core.types import Delta
from toolloop_server.llm.types import ModelInfo


class LLMClient(Protocol):
    """What the server needs from an LLM provider."""

    provider: str

    async def check_connection(self) -> bool: ...

    async def list_models(self) -> list[ModelInfo]: ...

    async def get_model_info(self, model_name: str) -> ModelInfo | None: ...

    def stream(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncIterator[Delta]: ...

    async def embed(self, texts: list[str], model: str) -> list[list[float]]: ...

    async def close(self) -> None: ...
