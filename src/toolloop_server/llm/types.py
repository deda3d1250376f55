"""Type definitions for LLM provider integration.

This module contains dataclasses used for representing provider models
and their metadata.
"""

from dataclasses import dataclass
from typing import Any

DEFAULT_CONTEXT_LENGTH = 2048


def _get_value(obj: Any, key: str, default: Any = None) -> Any:
    """Read a value from either an object attribute or a dict key."""
    if hasattr(obj, key):
        return getattr(obj, key, default)
    elif isinstance(obj, dict):
        return obj.get(key, default)
    return default


@dataclass
class ModelInfo:
    """Information about a model offered by the LLM provider.

    Attributes:
        name: Full model name (e.g., "qwen3:14b")
        size_mb: Model size in megabytes (0.0 when the provider does not say)
        format: Model format (e.g., "gguf")
        family: Model family (e.g., "qwen3")
        parameter_size: Human-readable parameter count (e.g., "14.8B")
        quantization_level: Quantization level (e.g., "Q4_K_M")
        capabilities: List of model capabilities (e.g., ["completion", "tools"])
        context_length: Maximum context window size in tokens
        provider: "ollama" or "openai"
    """

    name: str
    size_mb: float
    format: str
    family: str
    parameter_size: str
    quantization_level: str
    capabilities: list[str]
    context_length: int
    provider: str = "ollama"

    @property
    def supports_tools(self) -> bool:
        return "tools" in self.capabilities

    @staticmethod
    def from_ollama_model(model_data: Any, list_model: Any = None) -> "ModelInfo":
        """Create a ModelInfo instance from Ollama API model data.

        Args:
            model_data: Raw model data from Ollama API (show response)
            list_model: Optional model object from list response (for name/size)

        Returns:
            ModelInfo: Parsed model information
        """
        source = list_model if list_model else model_data
        model_name = _get_value(source, "model") or _get_value(
            source, "name", "unknown"
        )

        size_obj = _get_value(source, "size", 0) or 0
        # ByteSize objects from the ollama library convert with int()
        size_bytes = int(size_obj) if hasattr(size_obj, "__int__") else 0
        size_mb = round(size_bytes / (1024 * 1024), 1) if size_bytes > 0 else 0.0

        details = _get_value(model_data, "details", {})
        format_str = _get_value(details, "format", "unknown")
        family = _get_value(details, "family", "unknown")
        parameter_size = _get_value(details, "parameter_size", "unknown")
        quantization_level = _get_value(details, "quantization_level", "unknown")

        # Default to completion if not specified
        capabilities = _get_value(model_data, "capabilities", ["completion"])
        if not capabilities:
            capabilities = ["completion"]

        modelinfo = _get_value(model_data, "modelinfo", {})
        context_length = DEFAULT_CONTEXT_LENGTH

        context_key = f"{family}.context_length"
        if isinstance(modelinfo, dict) and context_key in modelinfo:
            context_length = int(modelinfo[context_key])
        elif isinstance(modelinfo, dict) and "context_length" in modelinfo:
            context_length = int(modelinfo["context_length"])
        elif hasattr(modelinfo, context_key.replace(".", "_")):
            context_length = int(
                getattr(modelinfo, context_key.replace(".", "_"), DEFAULT_CONTEXT_LENGTH)
            )

        return ModelInfo(
            name=model_name,
            size_mb=size_mb,
            format=format_str,
            family=family,
            parameter_size=parameter_size,
            quantization_level=quantization_level,
            capabilities=list(capabilities),
            context_length=context_length,
            provider="ollama",
        )

    @staticmethod
    def from_openai_model(model_data: Any) -> "ModelInfo":
        """Create a ModelInfo from an OpenAI-compatible ``/models`` entry.

        The models endpoint only reports an id and an owner, so everything
        else is filled with placeholders.
        """
        model_name = _get_value(model_data, "id", "unknown")
        return ModelInfo(
            name=model_name,
            size_mb=0.0,
            format="unknown",
            family=_get_value(model_data, "owned_by", None) or "unknown",
            parameter_size="unknown",
            quantization_level="unknown",
            capabilities=["completion", "tools"],
            context_length=DEFAULT_CONTEXT_LENGTH,
            provider="openai",
        )
