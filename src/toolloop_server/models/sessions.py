"""Pydantic models for session API requests and responses."""

from typing import Any

from pydantic import BaseModel, Field


class CreateSessionRequest(BaseModel):
    """Request body for creating a new session."""

    model: str | None = Field(
        None,
        description="The LLM model to use for this session. Defaults to the server's default model.",
    )
    system_prompt: str | None = Field(
        None, description="Optional system prompt content"
    )
    system_prompt_source_file: str | None = Field(
        None,
        description="Optional filename of the system prompt (for reference)",
    )


class UpdateSessionRequest(BaseModel):
    """Request body for updating a session."""

    model: str | None = Field(None, description="New model to use for this session")


class EditMessageRequest(BaseModel):
    """Request body for editing a message."""

    content: str = Field(..., description="New content for the message")


class SetSessionSystemPromptRequest(BaseModel):
    """Request body for setting a session's system prompt."""

    content: str = Field(..., min_length=1, description="System prompt content")
    source_file: str | None = Field(
        None, description="Optional filename the prompt was taken from"
    )


class SessionResponse(BaseModel):
    """Response model for a single session (metadata only)."""

    session_id: str
    model: str
    created_at: str
    updated_at: str
    message_count: int
    format_version: str = "2.0"


class SessionListItem(BaseModel):
    """A session item in the list response."""

    session_id: str
    model: str
    created_at: str
    updated_at: str
    message_count: int
    preview: str = Field("", description="Preview of first user message")


class SessionListResponse(BaseModel):
    """Response model for listing sessions."""

    sessions: list[SessionListItem]


class MessageResponse(BaseModel):
    """Response model for a single message of any role.

    Fields that do not apply to a role are null.
    """

    role: str
    content: str
    message_id: str | None = None
    timestamp: str | None = None
    # assistant
    model: str | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    tool_calls: list[dict[str, Any]] | None = None
    # system
    kind: str | None = None
    source_file: str | None = None
    filter_metrics: dict[str, Any] | None = None
    # tool
    tool_call_id: str | None = None
    tool_name: str | None = None
    server_id: str | None = None
    error_code: str | None = None
    execution_time_ms: float | None = None
    is_error: bool = False


class SessionDetailResponse(BaseModel):
    """Response model for a session with full message history."""

    session_id: str
    model: str
    created_at: str
    updated_at: str
    message_count: int
    format_version: str = "2.0"
    messages: list[MessageResponse]


class MessagesResponse(BaseModel):
    """Response model for getting session messages."""

    messages: list[MessageResponse]
