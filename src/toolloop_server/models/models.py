"""Pydantic models for model API responses.

This module contains request and response schemas for the /api/v1/models endpoints.
"""

from pydantic import BaseModel, Field


class ModelDetail(BaseModel):
    """Detailed information about a single model.

    Providers that do not report a field (OpenAI-compatible APIs report
    little more than the name) fill it with "unknown" or 0.
    """

    name: str = Field(..., description="Full model name")
    size_mb: float = Field(..., description="Model size in megabytes")
    format: str = Field(..., description="Model format (e.g., 'gguf')")
    family: str = Field(..., description="Model family name")
    parameter_size: str = Field(..., description="Human-readable parameter count")
    quantization_level: str = Field(..., description="Quantization level")
    capabilities: list[str] = Field(
        ...,
        description="List of model capabilities (e.g., ['completion', 'tools'])",
    )
    context_length: int = Field(
        ..., description="Maximum context window size in tokens"
    )
    provider: str = Field(default="ollama", description="Provider serving the model")


class ModelListResponse(BaseModel):
    """Response model for listing all available models."""

    models: list[ModelDetail] = Field(..., description="List of available models")


class ModelDetailResponse(ModelDetail):
    """Response model for getting details of a specific model."""
