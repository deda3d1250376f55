"""Data types for session management.

This module defines the core data structures for chat sessions and the
messages that make up a conversation history.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

# SystemMessage kinds. Only "prompt" messages are sent to the model; the
# others are synthetic entries kept for display.
SYSTEM_PROMPT = "prompt"
SYSTEM_FILTER_METRICS = "filter_metrics"
SYSTEM_NOTICE = "notice"


def utc_timestamp() -> str:
    """Current time as an ISO 8601 string with a Z suffix."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def new_message_id() -> str:
    """Generate a 10-character hex message id."""
    return uuid.uuid4().hex[:10]


@dataclass
class UserMessage:
    """A message from the user."""

    role: str = "user"
    content: str = ""
    message_id: str = ""
    timestamp: str = ""

    def __post_init__(self) -> None:
        """Validate role is always 'user'."""
        self.role = "user"


@dataclass
class SystemMessage:
    """A system prompt or a synthetic system entry.

    Attributes:
        kind: "prompt" for real system prompts, "filter_metrics" for tool
            selection reports and "notice" for loop notices
        filter_metrics: Selection metrics for "filter_metrics" messages
    """

    role: str = "system"
    content: str = ""
    kind: str = SYSTEM_PROMPT
    source_file: str | None = None
    filter_metrics: dict[str, Any] | None = None
    message_id: str = ""
    timestamp: str = ""

    def __post_init__(self) -> None:
        """Validate role is always 'system'."""
        self.role = "system"

    @property
    def is_synthetic(self) -> bool:
        return self.kind != SYSTEM_PROMPT


@dataclass
class AssistantMessage:
    """A response from the LLM assistant.

    ``tool_calls`` holds at most one batch of calls in the OpenAI
    ``{"id", "type", "function": {"name", "arguments"}}`` format.
    """

    role: str = "assistant"
    content: str = ""
    model: str = ""
    message_id: str = ""
    timestamp: str = ""
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    tool_calls: list[dict[str, Any]] | None = None
    is_error: bool = False

    def __post_init__(self) -> None:
        """Validate role is always 'assistant'."""
        self.role = "assistant"


@dataclass
class ToolMessage:
    """The result of one tool call, correlated by tool_call_id."""

    role: str = "tool"
    tool_call_id: str = ""
    tool_name: str = ""
    server_id: str | None = None
    content: str = ""
    is_error: bool = False
    error_code: str | None = None
    execution_time_ms: float | None = None
    message_id: str = ""
    timestamp: str = ""

    def __post_init__(self) -> None:
        """Validate role is always 'tool'."""
        self.role = "tool"


# Union type for all message types
Message = UserMessage | SystemMessage | AssistantMessage | ToolMessage


@dataclass
class SessionMetadata:
    """Metadata for a chat session."""

    session_id: str
    model: str
    created_at: str
    updated_at: str
    message_count: int = 0
    format_version: str = "2.0"


@dataclass
class SessionCreationOptions:
    """Options for creating a new session."""

    model: str
    system_prompt: str | None = None
    system_prompt_source_file: str | None = None
