"""Unit tests for the health check endpoint."""

from unittest.mock import AsyncMock

import pytest


def _mock_client(connected=True):
    mock_client = AsyncMock()
    mock_client.provider = "ollama"
    mock_client.host = "http://localhost:11434"
    mock_client.check_connection.return_value = connected
    return mock_client


@pytest.mark.asyncio
async def test_health_check_response_structure(async_client):
    """Test that health check returns ok with the expected fields."""
    response = await async_client.get("/api/v1/health")

    assert response.status_code == 200
    assert "application/json" in response.headers["content-type"]
    data = response.json()
    assert data["status"] == "ok"
    assert data["version"] == "0.1.0"
    assert data["provider"] == "ollama"
    assert data["mcp_servers_total"] == 0
    assert data["tools_total"] == 0


@pytest.mark.asyncio
async def test_health_check_with_llm_connected(async_client, test_app):
    test_app.state.llm_client = _mock_client(connected=True)

    response = await async_client.get("/api/v1/health")

    data = response.json()
    assert data["llm_connected"] is True
    assert data["llm_host"] == "http://localhost:11434"


@pytest.mark.asyncio
async def test_health_check_with_llm_disconnected(async_client, test_app):
    """Test that an unreachable provider does not make the server unhealthy."""
    test_app.state.llm_client = _mock_client(connected=False)

    response = await async_client.get("/api/v1/health")

    data = response.json()
    assert data["status"] == "ok"
    assert data["llm_connected"] is False


@pytest.mark.asyncio
async def test_health_check_connection_exception(async_client, test_app):
    mock_client = _mock_client()
    mock_client.check_connection.side_effect = Exception("Connection error")
    test_app.state.llm_client = mock_client

    response = await async_client.get("/api/v1/health")

    assert response.status_code == 200
    assert response.json()["llm_connected"] is False


@pytest.mark.asyncio
async def test_health_check_no_llm_client(async_client, test_app):
    """Test health check when the LLM client is not initialized."""
    if hasattr(test_app.state, "llm_client"):
        delattr(test_app.state, "llm_client")

    response = await async_client.get("/api/v1/health")

    data = response.json()
    assert data["status"] == "ok"
    assert data["provider"] is None
    assert data["llm_connected"] is None
    assert data["llm_host"] is None
