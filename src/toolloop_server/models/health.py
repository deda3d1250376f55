"""Health check response model."""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response model for the health check endpoint.

    Attributes:
        status: Health status indicator ("ok" or "error").
        version: The version of toolloop-server.
        provider: The configured LLM provider.
        llm_connected: Whether the LLM provider is reachable.
        llm_host: Provider URL, when one is configured.
        mcp_servers_connected: Number of connected MCP servers.
        mcp_servers_total: Number of configured MCP servers.
        tools_total: Number of tools across connected servers.
    """

    status: str = Field(..., description="Health status of the service")
    version: str = Field(..., description="Version of toolloop-server")
    provider: str | None = Field(default=None, description="LLM provider name")
    llm_connected: bool | None = Field(
        default=None, description="Whether the LLM provider is reachable"
    )
    llm_host: str | None = Field(default=None, description="LLM provider URL")
    mcp_servers_connected: int = Field(
        default=0, description="Number of connected MCP servers"
    )
    mcp_servers_total: int = Field(
        default=0, description="Number of configured MCP servers"
    )
    tools_total: int = Field(
        default=0, description="Number of tools across connected servers"
    )
