"""Pytest configuration for integration tests.

This module provides integration-test-specific fixtures that ensure
proper test isolation and mocking for API endpoint tests: the LLM client
and the MCP connection pool are replaced before the app starts, so the
lifespan wires the real selector, dispatcher and orchestrator around them.
"""

import json
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

from toolloop_server.core.errors import ToolInvocationFailed
from toolloop_server.core.types import Delta, ToolCallFragment, ToolSchema
from toolloop_server.llm import ModelInfo
from toolloop_server.mcp import ServerStatus


class FakeMcpPool:
    """In-memory stand-in for McpConnectionPool.

    Tools answer with ``{"tool": name, "arguments": ...}`` unless a
    handler is registered in ``handlers``.
    """

    def __init__(self, configs=None, **kwargs):
        self.tools: dict[str, list[ToolSchema]] = {}
        self.handlers = {}
        self.invocations: list[tuple[str, str, dict]] = []
        self.refreshed = 0
        self.closed = False

    async def connect_all(self):
        pass

    async def refresh(self):
        self.refreshed += 1

    def all_servers(self):
        return list(self.tools.keys())

    def list_tools(self, server_id):
        return list(self.tools.get(server_id, []))

    def status(self):
        return [
            ServerStatus(
                server_id=sid,
                name=sid,
                transport="stdio",
                connected=True,
                tool_count=len(tools),
            )
            for sid, tools in self.tools.items()
        ]

    async def invoke(self, server_id, tool_name, arguments):
        self.invocations.append((server_id, tool_name, arguments))
        handler = self.handlers.get(tool_name)
        if handler is not None:
            return handler(arguments)
        return {"tool": tool_name, "arguments": arguments}

    async def close(self):
        self.closed = True


def _text_response(*fragments, prompt_tokens=20, completion_tokens=5):
    deltas = [Delta(content_fragment=f) for f in fragments]
    deltas.append(Delta(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens))
    return deltas


def _tool_call_response(name, arguments, call_id="call_1"):
    return [
        Delta(
            tool_call_fragments=(
                ToolCallFragment(
                    index=0,
                    id=call_id,
                    name=name,
                    arguments_fragment=json.dumps(arguments),
                ),
            )
        )
    ]


class ScriptedStream:
    """Replays scripted responses, one per model call, recording the requests."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    async def __call__(self, model, messages, tools=None):
        self.calls.append({"model": model, "messages": messages, "tools": tools})
        if not self.responses:
            raise RuntimeError("No scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        for delta in response:
            yield delta


@pytest.fixture
def model_info():
    return ModelInfo(
        name="qwen3:14b",
        size_mb=8629.1,
        format="gguf",
        family="qwen3",
        parameter_size="14.8B",
        quantization_level="Q4_K_M",
        capabilities=["completion", "tools"],
        context_length=40960,
    )


@pytest.fixture(autouse=True)
def mock_llm_client(model_info):
    """Mock OllamaClient for all integration tests.

    This fixture patches the OllamaClient class before the app is created,
    ensuring the lifespan uses our mock instead of creating a real client.
    """
    with patch("toolloop_server.app.OllamaClient") as mock_client_class:
        mock_instance = AsyncMock()
        mock_instance.provider = "ollama"
        mock_instance.host = "http://localhost:11434"
        mock_instance.check_connection.return_value = True
        mock_instance.list_models.return_value = [model_info]
        mock_instance.get_model_info.return_value = model_info
        mock_instance.close = AsyncMock()

        mock_client_class.return_value = mock_instance
        yield mock_instance


@pytest.fixture
def script_llm(mock_llm_client):
    """Install scripted model responses and return the recorder."""

    def install(*responses):
        scripted = ScriptedStream(responses)
        mock_llm_client.stream = scripted
        return scripted

    return install


@pytest.fixture(autouse=True)
def mcp_pool():
    """Replace the MCP connection pool with an in-memory fake."""
    pool = FakeMcpPool()
    with patch("toolloop_server.app.McpConnectionPool", return_value=pool):
        yield pool


@pytest.fixture
def failing_tool(mcp_pool):
    """Register a tool handler that always fails."""

    def install(name, message="boom"):
        def handler(arguments):
            raise ToolInvocationFailed(message)

        mcp_pool.handlers[name] = handler

    return install


@pytest_asyncio.fixture
async def session_id(async_client):
    """Create a session and return its id."""
    response = await async_client.post("/api/v1/sessions", json={"model": "qwen3:14b"})
    assert response.status_code == 201
    return response.json()["session_id"]


@pytest.fixture(autouse=True)
def clean_session_dir(test_settings):
    """Ensure sessions directory is clean before and after each test."""
    sessions_dir = test_settings.resolved_sessions_dir

    if sessions_dir.exists():
        for session_file in sessions_dir.glob("*.json"):
            session_file.unlink()

    yield

    if sessions_dir.exists():
        for session_file in sessions_dir.glob("*.json"):
            session_file.unlink()


@pytest.fixture
def text_response():
    """Build a scripted model answer made of content deltas."""
    return _text_response


@pytest.fixture
def tool_call_response():
    """Build a scripted model answer asking for one tool call."""
    return _tool_call_response
