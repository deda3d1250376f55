"""Pydantic models for tool catalog and filtering endpoints."""

from typing import Any

from pydantic import BaseModel, Field


class ToolInfo(BaseModel):
    """A single tool exposed by an MCP server."""

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=dict)


class ServerTools(BaseModel):
    """The tools of one connected server."""

    server_id: str
    tools: list[ToolInfo]


class ToolsResponse(BaseModel):
    """Response for GET /api/v1/tools."""

    servers: list[ServerTools]
    total_tools: int


class ServerStatusResponse(BaseModel):
    """Connection state of one configured server."""

    server_id: str
    name: str
    transport: str
    connected: bool
    error: str | None = None
    tool_count: int = 0


class ServersResponse(BaseModel):
    """Response for GET /api/v1/tools/servers."""

    servers: list[ServerStatusResponse]


class FilterRequest(BaseModel):
    """Dry-run of the tool selection for a conversation."""

    messages: list[dict[str, Any]] = Field(
        ..., description="Provider-format messages ({role, content})"
    )
    top_k: int | None = Field(None, ge=1, description="Overrides the configured top_k")
    min_score: float | None = Field(
        None, ge=-1.0, le=1.0, description="Overrides the configured min_score"
    )
    use_mentions: bool = Field(
        False, description="Apply the stored mentions like a real run would"
    )


class FilterResponse(BaseModel):
    """Result of a dry-run selection."""

    mode: str = Field(description="pinned, semantic or unfiltered")
    tool_names: list[str]
    metrics: dict[str, Any] | None = None
    truncated: bool = False


class FilterStatusResponse(BaseModel):
    """State of the semantic tool filter."""

    enabled: bool
    ready: bool = False
    model: str | None = None
    indexed_tools: int = 0
    cache_size: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    last_index_ms: float | None = None
    last_error: str | None = None


class RefreshResponse(BaseModel):
    """Result of re-listing tools and re-indexing the scorer."""

    servers_connected: int
    tools_total: int
    filter_ready: bool
