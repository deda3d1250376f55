"""Async Ollama client wrapper.

This module wraps ollama.AsyncClient and adapts it to the provider-neutral
streaming interface: the neutral transcript is converted to Ollama's
message shape on the way in, and Ollama chunks are converted to ``Delta``
objects on the way out.
"""

import json
import logging
from contextlib import aclosing
from typing import Any, AsyncIterator

import ollama

from toolloop_server.core.types import Delta, ToolCallFragment, generate_tool_call_id
from toolloop_server.llm.types import ModelInfo

logger = logging.getLogger(__name__)


def _to_dict(obj: Any) -> dict[str, Any]:
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if isinstance(obj, dict):
        return obj
    return vars(obj)


def _model_name(model_obj: Any) -> str | None:
    if hasattr(model_obj, "model") and model_obj.model:
        return model_obj.model
    if hasattr(model_obj, "name"):
        return model_obj.name
    return model_obj.get("name") if isinstance(model_obj, dict) else None


def to_ollama_messages(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Convert a neutral transcript to Ollama's chat message format.

    Ollama expects tool call arguments as objects rather than JSON strings
    and identifies tool results by ``tool_name`` instead of a call id.

    Args:
        messages: Transcript in OpenAI message shape

    Returns:
        List of message dicts in Ollama format
    """
    converted = []
    for msg in messages:
        ollama_msg: dict[str, Any] = {"role": msg["role"], "content": msg["content"]}

        if msg.get("tool_calls"):
            tool_calls = []
            for call in msg["tool_calls"]:
                function = call.get("function") or {}
                arguments = function.get("arguments") or {}
                if isinstance(arguments, str):
                    try:
                        arguments = json.loads(arguments) if arguments.strip() else {}
                    except json.JSONDecodeError:
                        logger.warning(
                            f"Sending unparseable arguments for {function.get('name')} as empty"
                        )
                        arguments = {}
                tool_calls.append(
                    {"function": {"name": function.get("name", ""), "arguments": arguments}}
                )
            ollama_msg["tool_calls"] = tool_calls

        if msg["role"] == "tool" and msg.get("name"):
            ollama_msg["tool_name"] = msg["name"]

        converted.append(ollama_msg)
    return converted


class OllamaClient:
    """Async client for interacting with Ollama API.

    Attributes:
        host: The Ollama server URL (e.g., "http://localhost:11434")
        options: Model parameters sent with every chat request
        _client: The underlying ollama.AsyncClient instance
    """

    provider = "ollama"

    def __init__(
        self,
        host: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> None:
        """Initialize the Ollama client.

        Args:
            host: The Ollama server URL
            temperature: Sampling temperature, provider default when None
            max_tokens: Maximum tokens to generate (Ollama's num_predict)
        """
        self.host = host
        self.options: dict[str, Any] = {}
        if temperature is not None:
            self.options["temperature"] = temperature
        if max_tokens is not None:
            self.options["num_predict"] = max_tokens
        self._client = ollama.AsyncClient(host=host)
        logger.info(f"OllamaClient initialized with host: {host}")

    async def check_connection(self) -> bool:
        """Check if the Ollama server is reachable.

        Returns:
            bool: True if connection is successful, False otherwise
        """
        try:
            await self._client.list()
            logger.debug("Ollama connection check: successful")
            return True
        except Exception as e:
            logger.warning(f"Ollama connection check failed: {e}")
            return False

    async def list_models(self) -> list[ModelInfo]:
        """List all available models that support completion.

        Embedding-only models are excluded.

        Returns:
            list[ModelInfo]: List of available models with their metadata

        Raises:
            Exception: If the Ollama API request fails
        """
        try:
            response = await self._client.list()
            if hasattr(response, "models"):
                models_list = response.models
            else:
                models_list = response.get("models", [])

            logger.debug(f"Retrieved {len(models_list)} models from Ollama")

            model_infos: list[ModelInfo] = []
            for model_obj in models_list:
                model_name = _model_name(model_obj)
                if not model_name:
                    continue

                try:
                    # list has name/size, show has capabilities/context
                    show_response = await self._client.show(model_name)
                    model_info = ModelInfo.from_ollama_model(
                        show_response, list_model=model_obj
                    )
                except Exception as e:
                    logger.warning(f"Failed to get details for model {model_name}: {e}")
                    continue

                if "completion" in model_info.capabilities:
                    model_infos.append(model_info)
                else:
                    logger.debug(f"Skipped non-completion model: {model_name}")

            logger.info(f"Listed {len(model_infos)} completion-capable models")
            return model_infos

        except Exception as e:
            logger.error(f"Failed to list models: {e}")
            raise

    async def get_model_info(self, model_name: str) -> ModelInfo | None:
        """Get detailed information about a specific model.

        Args:
            model_name: Name of the model to query

        Returns:
            ModelInfo | None: Model information if found, None if not found

        Raises:
            Exception: If the Ollama API request fails (except for 404)
        """
        try:
            list_response = await self._client.list()
            list_model = None
            for model_obj in getattr(list_response, "models", None) or []:
                if _model_name(model_obj) == model_name:
                    list_model = model_obj
                    break

            if list_model is None:
                logger.debug(f"Model not found in list: {model_name}")
                return None

            show_response = await self._client.show(model_name)
            return ModelInfo.from_ollama_model(show_response, list_model=list_model)

        except ollama.ResponseError as e:
            if e.status_code == 404:
                logger.debug(f"Model not found: {model_name}")
                return None
            logger.error(f"Ollama API error for model {model_name}: {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to get model info for {model_name}: {e}")
            raise

    async def stream(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncIterator[Delta]:
        """Stream a chat response from Ollama as deltas.

        Ollama delivers each tool call whole, so every call becomes a
        single fragment with a running index and a generated id. Token
        counts arrive on the final chunk.

        Args:
            model: The model name to use for the chat
            messages: Neutral transcript, see ``to_ollama_messages``
            tools: OpenAI-format tool definitions

        Yields:
            Delta: One delta per chunk that carries content, tool calls or
            token counts. The underlying response stream is closed when
            this generator is closed early

        Raises:
            Exception: If the Ollama API request fails
        """
        logger.debug(
            f"Starting chat stream with model {model}: {len(messages)} messages, "
            f"{len(tools or [])} tools"
        )
        next_index = 0
        try:
            response = await self._client.chat(
                model=model,
                messages=to_ollama_messages(messages),
                tools=tools or None,
                stream=True,
                options=self.options or None,
            )
            async with aclosing(response):
                async for chunk in response:
                    chunk_dict = _to_dict(chunk)
                    message = chunk_dict.get("message") or {}

                    fragments = []
                    for call in message.get("tool_calls") or []:
                        function = call.get("function") or {}
                        arguments = function.get("arguments")
                        fragments.append(
                            ToolCallFragment(
                                index=next_index,
                                id=generate_tool_call_id(),
                                name=function.get("name") or "",
                                arguments_fragment=json.dumps(arguments or {}),
                            )
                        )
                        next_index += 1

                    done = bool(chunk_dict.get("done"))
                    delta = Delta(
                        content_fragment=message.get("content") or None,
                        tool_call_fragments=tuple(fragments),
                        prompt_tokens=(
                            chunk_dict.get("prompt_eval_count") if done else None
                        ),
                        completion_tokens=chunk_dict.get("eval_count") if done else None,
                    )
                    if (
                        delta.content_fragment
                        or delta.tool_call_fragments
                        or delta.prompt_tokens is not None
                        or delta.completion_tokens is not None
                    ):
                        yield delta

                    if done:
                        break

            logger.debug("Chat stream completed")

        except Exception as e:
            logger.error(f"Chat stream failed: {e}")
            raise

    async def embed(self, texts: list[str], model: str) -> list[list[float]]:
        """Embed texts with an Ollama embedding model.

        Raises:
            Exception: If the Ollama API request fails
        """
        response = await self._client.embed(model=model, input=texts)
        embeddings = _to_dict(response).get("embeddings") or []
        return [list(vector) for vector in embeddings]

    async def close(self) -> None:
        """Close the client and clean up resources.

        ollama.AsyncClient uses httpx internally which handles cleanup.
        """
        logger.debug("OllamaClient closed")
