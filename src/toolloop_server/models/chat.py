"""Pydantic models for chat API requests and responses.

This module defines the request and response schemas for the chat endpoints,
including both streaming and non-streaming chat interactions. The streaming
event payloads are the orchestrator events in ``toolloop_server.core.events``.
"""

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    """Request body for chat endpoints.

    Used by both POST /api/v1/chat/{session_id} (non-streaming)
    and POST /api/v1/chat/{session_id}/stream (streaming).
    """

    message: str | None = Field(
        default=None,
        description="The user message to send. If null, re-generates from the last user message in session history.",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"message": "List the files in my project directory"},
                {"message": None},
            ]
        }
    )


class MessageResponse(BaseModel):
    """Response schema for the final assistant message."""

    role: str = Field(description="Message role (assistant)")
    content: str = Field(description="Message content")
    model: str = Field(description="Model that generated this message")
    message_id: str = Field(description="Unique message identifier")
    timestamp: str = Field(description="ISO 8601 timestamp")
    prompt_tokens: int | None = Field(
        default=None, description="Number of tokens in the prompt"
    )
    completion_tokens: int | None = Field(
        default=None, description="Number of tokens generated"
    )
    tool_calls: list[dict] | None = Field(
        default=None, description="Tool calls left unanswered at the iteration limit"
    )
    is_error: bool = Field(default=False, description="Whether the run was aborted")


class ToolResultInfo(BaseModel):
    """One tool call executed during the run."""

    tool_call_id: str
    tool_name: str
    server_id: str | None = None
    content: str = Field(description="Result payload or error JSON fed to the model")
    is_error: bool = False
    error_code: str | None = None
    execution_time_ms: float | None = None


class ChatResponse(BaseModel):
    """Response body for non-streaming chat endpoint.

    This is returned by POST /api/v1/chat/{session_id} after the whole
    run, including all tool iterations, has finished.
    """

    session_id: str = Field(description="Session identifier")
    message: MessageResponse | None = Field(
        default=None, description="The assistant's final message"
    )
    tool_calls_executed: list[ToolResultInfo] = Field(
        default_factory=list,
        description="Tools executed during this run, in execution order",
    )
    iterations: int = Field(description="Number of model calls made")
    final_state: str = Field(
        description="completed, iteration_limit, cancelled or aborted"
    )
    notice: str | None = Field(
        default=None, description="Set when the run stopped at the iteration limit"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "session_id": "a1b2c3d4e5",
                "message": {
                    "role": "assistant",
                    "content": "Your project contains README.md and src/.",
                    "model": "qwen3:14b",
                    "message_id": "f1e2d3c4b5",
                    "timestamp": "2025-01-15T10:35:00.000000Z",
                    "prompt_tokens": 120,
                    "completion_tokens": 45,
                    "tool_calls": None,
                    "is_error": False,
                },
                "tool_calls_executed": [
                    {
                        "tool_call_id": "call_8f2a1c9d3b4e",
                        "tool_name": "list_directory",
                        "server_id": "fs",
                        "content": '{"content": [{"type": "text", "text": "README.md\\nsrc/"}]}',
                        "is_error": False,
                        "error_code": None,
                        "execution_time_ms": 12.5,
                    }
                ],
                "iterations": 2,
                "final_state": "completed",
                "notice": None,
            }
        }
    )


class CancelResponse(BaseModel):
    """Response body for the cancel endpoint."""

    session_id: str
    cancelled: bool = Field(description="Whether an active run was asked to stop")
