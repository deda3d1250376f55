"""Tool call dispatch.

Resolves the server owning a requested tool, validates the arguments as
JSON, and invokes the tool with a bounded wait. Every failure becomes an
error ToolResult; only cancellation of the surrounding run propagates.
"""

import asyncio
import json
import logging
import time
from typing import Any, Protocol, Sequence

from toolloop_server.core.catalog import CatalogSnapshot
from toolloop_server.core.errors import (
    ToolArgsInvalid,
    ToolError,
    ToolInvocationFailed,
    ToolNotFound,
)
from toolloop_server.core.types import PendingToolCall, ToolResult

logger = logging.getLogger(__name__)

DEFAULT_TOOL_TIMEOUT = 60.0


class ToolBackend(Protocol):
    """Invokes a tool on a specific server. May raise."""

    async def invoke(
        self, server_id: str, tool_name: str, arguments: dict[str, Any]
    ) -> Any: ...


def parse_arguments(arguments_json: str) -> dict[str, Any]:
    """Parse accumulated tool arguments.

    An empty string is treated as an empty argument object since models
    commonly send nothing for parameterless tools.

    Raises:
        ToolArgsInvalid: If the text is not JSON or not a JSON object
    """
    if not arguments_json.strip():
        return {}
    try:
        arguments = json.loads(arguments_json)
    except json.JSONDecodeError as e:
        raise ToolArgsInvalid(f"Invalid JSON arguments: {e.msg}") from e
    if not isinstance(arguments, dict):
        raise ToolArgsInvalid("Tool arguments must be a JSON object")
    return arguments


class ToolDispatcher:
    """Executes tool calls against a backend."""

    def __init__(self, backend: ToolBackend, timeout: float = DEFAULT_TOOL_TIMEOUT):
        self.backend = backend
        self.timeout = timeout

    async def execute(
        self, call: PendingToolCall, snapshot: CatalogSnapshot
    ) -> ToolResult:
        """Execute one tool call and capture its outcome.

        Args:
            call: The reconstructed tool call
            snapshot: Catalog snapshot used to route the call

        Returns:
            ToolResult with either a JSON payload or an error message
        """
        server_id = snapshot.find_server_for_tool(call.name)
        try:
            if server_id is None:
                raise ToolNotFound(call.name)
            arguments = parse_arguments(call.arguments_json)
        except ToolError as e:
            logger.warning(f"Tool call {call.id} ({call.name}) rejected: {e}")
            return ToolResult(
                tool_call_id=call.id,
                tool_name=call.name,
                server_id=server_id,
                error_message=str(e),
                error_code=e.code,
            )

        logger.info(f"Executing tool {call.name} on server {server_id}")
        start = time.perf_counter()
        try:
            payload = await self._invoke(server_id, call.name, arguments)
        except ToolError as e:
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.warning(f"Tool {call.name} failed after {elapsed_ms:.0f}ms: {e}")
            return ToolResult(
                tool_call_id=call.id,
                tool_name=call.name,
                server_id=server_id,
                error_message=str(e),
                execution_time_ms=elapsed_ms,
                error_code=e.code,
            )

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug(f"Tool {call.name} completed in {elapsed_ms:.0f}ms")
        return ToolResult(
            tool_call_id=call.id,
            tool_name=call.name,
            server_id=server_id,
            payload_json=payload,
            execution_time_ms=elapsed_ms,
        )

    async def _invoke(
        self, server_id: str, tool_name: str, arguments: dict[str, Any]
    ) -> str:
        try:
            result = await asyncio.wait_for(
                self.backend.invoke(server_id, tool_name, arguments),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ToolInvocationFailed(
                f"Tool execution timed out after {self.timeout:g}s", code="timeout"
            ) from e
        except ToolError:
            raise
        except Exception as e:
            raise ToolInvocationFailed(str(e) or "Tool execution failed") from e

        try:
            return json.dumps(result, ensure_ascii=False, default=str)
        except (TypeError, ValueError) as e:
            raise ToolInvocationFailed(f"Tool result is not serializable: {e}") from e

    async def execute_all(
        self,
        calls: Sequence[PendingToolCall],
        snapshot: CatalogSnapshot,
        parallel: bool = False,
    ) -> list[ToolResult]:
        """Execute a batch of calls, returning results in request order."""
        if parallel:
            return list(
                await asyncio.gather(*(self.execute(call, snapshot) for call in calls))
            )
        return [await self.execute(call, snapshot) for call in calls]
