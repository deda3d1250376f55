"""Async client for OpenAI-compatible chat completion APIs.

Works with OpenAI itself and with gateways exposing the same API. The
streamed ``choices[0].delta`` maps one to one onto ``Delta``.
"""

import logging
from typing import Any, AsyncIterator

import openai
from openai import AsyncOpenAI

from toolloop_server.core.types import Delta, ToolCallFragment
from toolloop_server.llm.types import ModelInfo

logger = logging.getLogger(__name__)


def uses_max_completion_tokens(model: str) -> bool:
    """GPT-5 models reject ``max_tokens`` in favour of ``max_completion_tokens``."""
    return "gpt-5" in model


class OpenAICompatibleClient:
    """Async client for an OpenAI-compatible API.

    Attributes:
        base_url: API base URL, None for api.openai.com
        temperature: Sampling temperature sent with every request
        max_tokens: Completion token limit sent with every request
    """

    provider = "openai"

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        temperature: float | None = 0.7,
        max_tokens: int | None = 2000,
    ) -> None:
        self.base_url = base_url
        self.temperature = temperature
        self.max_tokens = max_tokens
        # Local gateways usually accept any key
        self._client = AsyncOpenAI(base_url=base_url, api_key=api_key or "not-needed")
        logger.info(f"OpenAICompatibleClient initialized with base URL: {base_url}")

    async def check_connection(self) -> bool:
        try:
            await self._client.models.list()
            logger.debug("OpenAI connection check: successful")
            return True
        except Exception as e:
            logger.warning(f"OpenAI connection check failed: {e}")
            return False

    async def list_models(self) -> list[ModelInfo]:
        """List the models offered by the API.

        Raises:
            Exception: If the API request fails
        """
        try:
            page = await self._client.models.list()
            model_infos = [ModelInfo.from_openai_model(m) for m in page.data]
            logger.info(f"Listed {len(model_infos)} models")
            return model_infos
        except Exception as e:
            logger.error(f"Failed to list models: {e}")
            raise

    async def get_model_info(self, model_name: str) -> ModelInfo | None:
        """Get information about one model, None if the API does not know it."""
        try:
            model = await self._client.models.retrieve(model_name)
        except openai.NotFoundError:
            logger.debug(f"Model not found: {model_name}")
            return None
        return ModelInfo.from_openai_model(model)

    def _request_params(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if self.temperature is not None:
            params["temperature"] = self.temperature
        if self.max_tokens is not None:
            if uses_max_completion_tokens(model):
                params["max_completion_tokens"] = self.max_tokens
            else:
                params["max_tokens"] = self.max_tokens
        if tools:
            params["tools"] = tools
            params["tool_choice"] = "auto"
        return params

    async def stream(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncIterator[Delta]:
        """Stream a chat completion as deltas.

        The HTTP stream is closed when iteration stops for any reason.

        Raises:
            openai.OpenAIError: If the request or the stream fails
        """
        logger.debug(
            f"Starting chat stream with model {model}: {len(messages)} messages, "
            f"{len(tools or [])} tools"
        )
        response = await self._client.chat.completions.create(
            **self._request_params(model, messages, tools)
        )
        try:
            async for chunk in response:
                usage = getattr(chunk, "usage", None)
                if usage is not None:
                    yield Delta(
                        prompt_tokens=usage.prompt_tokens,
                        completion_tokens=usage.completion_tokens,
                    )
                if not chunk.choices:
                    continue

                delta = chunk.choices[0].delta
                fragments = tuple(
                    ToolCallFragment(
                        index=call.index,
                        id=call.id,
                        name=call.function.name if call.function else None,
                        arguments_fragment=call.function.arguments
                        if call.function
                        else None,
                    )
                    for call in delta.tool_calls or []
                )
                if delta.content or fragments:
                    yield Delta(
                        content_fragment=delta.content or None,
                        tool_call_fragments=fragments,
                    )
        finally:
            await response.close()
            logger.debug("Chat stream closed")

    async def embed(self, texts: list[str], model: str) -> list[list[float]]:
        response = await self._client.embeddings.create(model=model, input=texts)
        return [list(item.embedding) for item in response.data]

    async def close(self) -> None:
        await self._client.close()
        logger.debug("OpenAICompatibleClient closed")
