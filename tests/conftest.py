"""Pytest configuration and shared fixtures for toolloop-server tests.

This module provides common fixtures used across all test modules,
including test app creation and async client setup.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from toolloop_server import create_app
from toolloop_server.config import ToolLoopSettings
from toolloop_server.core.types import ToolSchema


@pytest.fixture
def test_settings(tmp_path):
    """Create test settings with isolated temporary directories.

    Semantic filtering is off so the app never needs an embedding model.

    Args:
        tmp_path: Pytest fixture providing a temporary directory.

    Returns:
        ToolLoopSettings: Settings instance configured for testing.
    """
    return ToolLoopSettings(
        host="127.0.0.1",
        port=8000,
        provider="ollama",
        ollama_host="http://localhost:11434",
        data_dir=str(tmp_path),
        sessions_dir="chat_sessions",
        mentions_file="mentions.json",
        mcp_servers_file="mcp_servers.json",
        tool_filter_enabled=False,
        system_prompt=None,
        log_level="DEBUG",
        cors_origins=["*"],
    )


@pytest.fixture
def test_app(test_settings):
    """Create a FastAPI test application instance.

    Args:
        test_settings: Test settings fixture.

    Returns:
        FastAPI: Configured test application.
    """
    return create_app(settings=test_settings)


@pytest_asyncio.fixture
async def async_client(test_app):
    """Create an async HTTP client for testing FastAPI endpoints.

    Args:
        test_app: Test application fixture.

    Yields:
        AsyncClient: Async HTTP client for making test requests.
    """
    # Trigger the lifespan startup manually for tests
    async with test_app.router.lifespan_context(test_app):
        transport = ASGITransport(app=test_app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client


@pytest.fixture
def weather_tools():
    """Tools of a small "weather" server."""
    return [
        ToolSchema(
            name="get_weather",
            description="Get the current weather for a city",
            input_schema={
                "type": "object",
                "properties": {"city": {"type": "string"}},
                "required": ["city"],
            },
        ),
        ToolSchema(
            name="get_forecast",
            description="Get a multi-day forecast for a city",
            input_schema={
                "type": "object",
                "properties": {"city": {"type": "string"}, "days": {"type": "integer"}},
            },
        ),
    ]


@pytest.fixture
def files_tools():
    """Tools of a small "files" server."""
    return [
        ToolSchema(
            name="read_file",
            description="Read a text file",
            input_schema={"type": "object", "properties": {"path": {"type": "string"}}},
        ),
        ToolSchema(
            name="list_directory",
            description="List the entries of a directory",
            input_schema={"type": "object", "properties": {"path": {"type": "string"}}},
        ),
    ]
