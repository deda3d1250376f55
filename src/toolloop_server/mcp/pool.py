"""Connection pool over the configured MCP servers.

The pool is both the tool catalog read by the selector and the backend
invoked by the dispatcher. Connections are opened once at startup and
closed at shutdown from the same task, since the MCP transports are
anyio task groups that must be exited where they were entered.
"""

import asyncio
import logging
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import Any

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client
from mcp.client.streamable_http import streamablehttp_client

from toolloop_server.core.errors import ToolInvocationFailed
from toolloop_server.core.types import ToolSchema
from toolloop_server.mcp.config import McpServerConfig

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 30.0


@dataclass
class ServerStatus:
    """Connection state of one configured server."""

    server_id: str
    name: str
    transport: str
    connected: bool = False
    error: str | None = None
    tool_count: int = 0


@dataclass
class _Connection:
    config: McpServerConfig
    stack: AsyncExitStack | None = None
    session: ClientSession | None = None
    tools: list[ToolSchema] = field(default_factory=list)
    error: str | None = None


def _tool_schema(tool: Any) -> ToolSchema:
    return ToolSchema(
        name=tool.name,
        description=tool.description or "",
        input_schema=dict(tool.inputSchema or {}),
    )


def _content_text(blocks: list[Any]) -> str:
    parts = []
    for block in blocks or []:
        text = getattr(block, "text", None)
        parts.append(text if text is not None else str(block))
    return "\n".join(parts)


class McpConnectionPool:
    """Owns the client sessions of all configured MCP servers.

    Server order follows the config file and defines catalog order, which
    decides routing when two servers expose the same tool name.
    """

    def __init__(
        self,
        configs: list[McpServerConfig],
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    ):
        self.connect_timeout = connect_timeout
        self._connections: dict[str, _Connection] = {
            config.id: _Connection(config=config) for config in configs
        }

    async def connect_all(self) -> None:
        """Connect to every configured server.

        A server that fails to connect is logged and skipped; the others
        still connect.
        """
        for server_id, connection in self._connections.items():
            try:
                await self._connect(connection)
            except Exception as e:
                connection.error = str(e) or type(e).__name__
                logger.error(f"Failed to connect to MCP server {server_id}: {e}")

        connected = sum(1 for c in self._connections.values() if c.session)
        logger.info(f"Connected to {connected}/{len(self._connections)} MCP servers")

    async def _connect(self, connection: _Connection) -> None:
        config = connection.config
        stack = AsyncExitStack()
        try:
            if config.transport == "stdio":
                params = StdioServerParameters(
                    command=config.command or "",
                    args=config.args,
                    env=config.env,
                )
                read_stream, write_stream = await stack.enter_async_context(
                    stdio_client(params)
                )
            else:
                read_stream, write_stream, _ = await stack.enter_async_context(
                    streamablehttp_client(config.url or "", headers=config.headers)
                )

            session = await stack.enter_async_context(
                ClientSession(read_stream, write_stream)
            )
            await asyncio.wait_for(session.initialize(), timeout=self.connect_timeout)
            tools_result = await session.list_tools()
        except BaseException:
            await stack.aclose()
            raise

        connection.stack = stack
        connection.session = session
        connection.tools = [_tool_schema(t) for t in tools_result.tools]
        connection.error = None
        logger.info(
            f"Connected to MCP server {config.id} ({config.transport}) "
            f"with {len(connection.tools)} tools"
        )

    async def refresh(self) -> None:
        """Re-list the tools of every connected server."""
        for server_id, connection in self._connections.items():
            if connection.session is None:
                continue
            try:
                tools_result = await connection.session.list_tools()
            except Exception as e:
                logger.warning(f"Failed to refresh tools of {server_id}: {e}")
                continue
            connection.tools = [_tool_schema(t) for t in tools_result.tools]
            logger.debug(f"Refreshed {server_id}: {len(connection.tools)} tools")

    def all_servers(self) -> list[str]:
        """Ids of the connected servers, in config order."""
        return [sid for sid, c in self._connections.items() if c.session is not None]

    def list_tools(self, server_id: str) -> list[ToolSchema]:
        connection = self._connections.get(server_id)
        if connection is None or connection.session is None:
            return []
        return list(connection.tools)

    def status(self) -> list[ServerStatus]:
        return [
            ServerStatus(
                server_id=sid,
                name=c.config.name,
                transport=c.config.transport,
                connected=c.session is not None,
                error=c.error,
                tool_count=len(c.tools) if c.session is not None else 0,
            )
            for sid, c in self._connections.items()
        ]

    async def invoke(
        self, server_id: str, tool_name: str, arguments: dict[str, Any]
    ) -> Any:
        """Call a tool on a server.

        Returns:
            The tool's structured content when present, otherwise
            ``{"content": [...]}`` with the content blocks as JSON

        Raises:
            ToolInvocationFailed: If the server is not connected or the
                tool reports an error
        """
        connection = self._connections.get(server_id)
        if connection is None or connection.session is None:
            raise ToolInvocationFailed(f"Server {server_id} is not connected")

        result = await connection.session.call_tool(tool_name, arguments)
        if result.isError:
            raise ToolInvocationFailed(
                _content_text(result.content) or "Tool reported an error"
            )

        structured = getattr(result, "structuredContent", None)
        if structured is not None:
            return structured
        return {
            "content": [
                block.model_dump(mode="json", exclude_none=True)
                for block in result.content or []
            ]
        }

    async def close(self) -> None:
        """Close every connection in reverse connect order."""
        for server_id, connection in reversed(list(self._connections.items())):
            if connection.stack is None:
                continue
            try:
                await connection.stack.aclose()
            except Exception as e:
                logger.warning(f"Error closing MCP server {server_id}: {e}")
            connection.stack = None
            connection.session = None
        logger.info("MCP connections closed")
