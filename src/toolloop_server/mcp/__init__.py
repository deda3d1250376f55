"""MCP server connections.

This package connects to the configured MCP servers, keeps the catalog of
tools they expose, and invokes tools on behalf of the dispatcher.
"""

from toolloop_server.mcp.config import McpServerConfig, load_server_configs
from toolloop_server.mcp.pool import McpConnectionPool, ServerStatus

__all__ = ["McpConnectionPool", "McpServerConfig", "ServerStatus", "load_server_configs"]
