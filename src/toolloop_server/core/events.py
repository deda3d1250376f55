"""Events emitted by the conversation orchestrator.

Every event is a pydantic model with an ``event`` discriminator, so the
chat router can forward them as SSE frames without translation.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field


class RunStartedEvent(BaseModel):
    """Emitted once when a run begins."""

    event: Literal["run_started"] = "run_started"
    model: str = Field(description="Model used for every call of this run")
    max_iterations: int = Field(description="Upper bound on model calls")


class ToolsSelectedEvent(BaseModel):
    """Emitted after tool selection, once per iteration."""

    event: Literal["tools_selected"] = "tools_selected"
    iteration: int
    mode: str = Field(description="pinned, semantic or unfiltered")
    tool_names: list[str] = Field(default_factory=list)
    metrics: dict[str, Any] | None = Field(
        default=None, description="Filter metrics, absent in unfiltered mode"
    )
    truncated: bool = False


class ContentDeltaEvent(BaseModel):
    """Emitted for each text fragment streamed by the model."""

    event: Literal["content_delta"] = "content_delta"
    iteration: int
    content: str
    role: str = "assistant"


class MessageCompleteEvent(BaseModel):
    """Emitted when an assistant message has been fully received."""

    event: Literal["message_complete"] = "message_complete"
    iteration: int
    message_id: str
    model: str
    content: str
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    tool_calls: list[dict[str, Any]] | None = None


class ToolCallEvent(BaseModel):
    """Emitted right before a tool call is dispatched."""

    event: Literal["tool_call"] = "tool_call"
    iteration: int
    tool_call_id: str
    tool_name: str
    arguments: str = Field(description="Raw JSON arguments as sent by the model")


class ToolResultEvent(BaseModel):
    """Emitted after a tool call finished, successfully or not."""

    event: Literal["tool_result"] = "tool_result"
    iteration: int
    tool_call_id: str
    tool_name: str
    server_id: str | None = None
    content: str
    is_error: bool = False
    error_code: str | None = None
    execution_time_ms: float | None = None


class IterationLimitEvent(BaseModel):
    """Emitted when the run stops at the iteration bound."""

    event: Literal["iteration_limit"] = "iteration_limit"
    iterations: int
    message: str


class RunCancelledEvent(BaseModel):
    """Emitted when a run was cancelled by the user."""

    event: Literal["run_cancelled"] = "run_cancelled"
    iteration: int
    partial_content: str = ""


class ErrorEvent(BaseModel):
    """Emitted when a run is aborted."""

    event: Literal["error"] = "error"
    code: str = Field(description="Error code")
    message: str = Field(description="Human-readable error message")
    details: dict[str, Any] = Field(default_factory=dict)


class DoneEvent(BaseModel):
    """Always the last event of a run."""

    event: Literal["done"] = "done"
    final_state: str = Field(
        description="completed, iteration_limit, cancelled or aborted"
    )
    iterations: int
    tool_invocations: int


OrchestratorEvent = (
    RunStartedEvent
    | ToolsSelectedEvent
    | ContentDeltaEvent
    | MessageCompleteEvent
    | ToolCallEvent
    | ToolResultEvent
    | IterationLimitEvent
    | RunCancelledEvent
    | ErrorEvent
    | DoneEvent
)


def to_sse(event: OrchestratorEvent) -> dict[str, str]:
    """Render an event as an sse-starlette frame."""
    return {"event": event.event, "data": event.model_dump_json()}
