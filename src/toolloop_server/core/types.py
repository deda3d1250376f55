"""Core data types for the tool-augmented conversation loop.

This module contains the dataclasses shared by the selector, accumulator,
dispatcher and orchestrator: tool schemas, pins (mentions), streaming
deltas, pending tool calls and their results, and filter metrics.
"""

import json
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class ToolSchema:
    """A tool as advertised by an MCP server.

    Attributes:
        name: Tool name, unique within one server
        description: Human readable description
        input_schema: JSON-Schema-like description of the arguments
    """

    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolSchema":
        """Create a ToolSchema from an MCP-style tool dict.

        Accepts both the MCP wire key ``inputSchema`` and ``input_schema``.
        """
        input_schema = data.get("inputSchema")
        if input_schema is None:
            input_schema = data.get("input_schema")
        return cls(
            name=data["name"],
            description=data.get("description") or "",
            input_schema=dict(input_schema or {}),
        )

    def to_function_definition(self) -> dict[str, Any]:
        """Render the tool in the OpenAI function-calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description or f"Call the {self.name} tool",
                "parameters": {
                    "type": "object",
                    "properties": self.input_schema.get("properties") or {},
                    "required": self.input_schema.get("required") or [],
                },
            },
        }


@dataclass(frozen=True)
class ToolRef:
    """Server-scoped lookup key for a tool."""

    server_id: str
    tool_name: str


class MentionKind(str, Enum):
    """What a pin refers to."""

    SERVER = "server"
    TOOL = "tool"


@dataclass(frozen=True)
class Mention:
    """An explicit pin forcing a server or a single tool into scope.

    Attributes:
        kind: Whether the whole server or a single tool is pinned
        server_id: The server the pin belongs to
        tool_name: Tool name for tool pins, None for server pins
    """

    kind: MentionKind
    server_id: str
    tool_name: str | None = None

    def __post_init__(self) -> None:
        if self.kind == MentionKind.TOOL and not self.tool_name:
            raise ValueError("Tool mentions require a tool_name")

    @property
    def key(self) -> tuple[str, str, str]:
        """Identity tuple ``(kind, id, server_id)`` used for de-duplication."""
        ident = self.server_id if self.kind == MentionKind.SERVER else self.tool_name
        return (self.kind.value, ident or "", self.server_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "server_id": self.server_id,
            "tool_name": self.tool_name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Mention":
        return cls(
            kind=MentionKind(data["kind"]),
            server_id=data["server_id"],
            tool_name=data.get("tool_name"),
        )


def dedupe_mentions(mentions: list[Mention]) -> list[Mention]:
    """Drop mentions whose key was already seen, keeping the first one."""
    seen: set[tuple[str, str, str]] = set()
    unique: list[Mention] = []
    for mention in mentions:
        if mention.key in seen:
            continue
        seen.add(mention.key)
        unique.append(mention)
    return unique


@dataclass(frozen=True)
class ToolCallFragment:
    """A partial tool call as it appears in one streamed delta."""

    index: int
    id: str | None = None
    name: str | None = None
    arguments_fragment: str | None = None


@dataclass(frozen=True)
class Delta:
    """One incremental chunk of a streamed model response.

    Attributes:
        content_fragment: Text to append to the assistant message
        tool_call_fragments: Partial tool calls keyed by their index
        prompt_tokens: Prompt token count, usually only on the final delta
        completion_tokens: Generated token count, usually only on the final delta
    """

    content_fragment: str | None = None
    tool_call_fragments: tuple[ToolCallFragment, ...] = ()
    prompt_tokens: int | None = None
    completion_tokens: int | None = None


@dataclass
class PendingToolCall:
    """A tool call reconstructed from the delta stream.

    ``arguments_json`` is only guaranteed to be complete once the stream
    has ended.
    """

    id: str
    name: str
    arguments_json: str = ""

    def to_provider_dict(self) -> dict[str, Any]:
        """Render in the OpenAI assistant ``tool_calls`` item format."""
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments_json},
        }


def generate_tool_call_id() -> str:
    """Generate an id for providers that do not assign tool call ids."""
    return f"call_{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class ToolResult:
    """Outcome of one tool call. Exactly one of payload/error is set."""

    tool_call_id: str
    tool_name: str
    server_id: str | None = None
    payload_json: str | None = None
    error_message: str | None = None
    execution_time_ms: float | None = None
    error_code: str | None = None

    def __post_init__(self) -> None:
        if (self.payload_json is None) == (self.error_message is None):
            raise ValueError(
                "ToolResult requires exactly one of payload_json or error_message"
            )

    @property
    def is_error(self) -> bool:
        return self.error_message is not None

    def to_model_content(self) -> str:
        """Content of the ``tool`` message fed back to the model."""
        if self.error_message is not None:
            return json.dumps({"error": self.error_message})
        return self.payload_json or ""


@dataclass(frozen=True)
class ToolAttribution:
    """Which server a selected tool was taken from."""

    tool_name: str
    server_id: str


@dataclass(frozen=True)
class FilterMetrics:
    """Reporting data for one tool selection. Never drives control flow."""

    tools_used: int
    tools_total: int
    filter_time_ms: float
    attribution: tuple[ToolAttribution, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "tools_used": self.tools_used,
            "tools_total": self.tools_total,
            "filter_time_ms": self.filter_time_ms,
            "attribution": [
                {"tool_name": a.tool_name, "server_id": a.server_id}
                for a in self.attribution
            ],
        }


@dataclass(frozen=True)
class ScoredTool:
    tool_name: str
    score: float


@dataclass(frozen=True)
class ScoreResult:
    """Ranked tools from the semantic scorer and how long scoring took."""

    tools: list[ScoredTool]
    duration_ms: float


@dataclass
class AccumulatedMessage:
    """The assistant message reassembled at the end of a stream."""

    content: str = ""
    tool_calls: list[PendingToolCall] = field(default_factory=list)
    prompt_tokens: int | None = None
    completion_tokens: int | None = None

    @property
    def is_empty(self) -> bool:
        return not self.content and not self.tool_calls
