"""Integration tests for the non-streaming chat API endpoint.

Covers plain answers, tool round trips against the MCP pool, failing and
unknown tools, the iteration bound, regeneration and error mapping.
"""

import json

import pytest
from httpx import AsyncClient

from toolloop_server.core.orchestrator import (
    EMPTY_RESPONSE_FALLBACK,
    ITERATION_LIMIT_NOTICE,
)


@pytest.mark.asyncio
async def test_chat_plain_answer(async_client: AsyncClient, session_id, script_llm, text_response):
    """Test a response without tool calls."""
    scripted = script_llm(text_response("Hello", " there!"))

    response = await async_client.post(f"/api/v1/chat/{session_id}", json={"message": "Hi!"})

    assert response.status_code == 200
    data = response.json()
    assert data["session_id"] == session_id
    assert data["message"]["content"] == "Hello there!"
    assert data["message"]["model"] == "qwen3:14b"
    assert data["message"]["prompt_tokens"] == 20
    assert data["message"]["completion_tokens"] == 5
    assert data["tool_calls_executed"] == []
    assert data["iterations"] == 1
    assert data["final_state"] == "completed"
    assert data["notice"] is None

    # No tools connected, so none are offered
    assert scripted.calls[0]["tools"] is None
    assert scripted.calls[0]["messages"][-1] == {"role": "user", "content": "Hi!"}

    session = (await async_client.get(f"/api/v1/sessions/{session_id}")).json()
    assert [m["role"] for m in session["messages"]] == ["user", "assistant"]


@pytest.mark.asyncio
async def test_chat_tool_round_trip(
    async_client: AsyncClient,
    session_id,
    mcp_pool,
    weather_tools,
    script_llm,
    text_response,
    tool_call_response,
):
    """Test that a tool call is executed and its result fed back to the model."""
    mcp_pool.tools["weather"] = weather_tools
    mcp_pool.handlers["get_weather"] = lambda args: {"city": args["city"], "temp_c": 21}
    scripted = script_llm(
        tool_call_response("get_weather", {"city": "Paris"}),
        text_response("It is 21 degrees in Paris."),
    )

    response = await async_client.post(
        f"/api/v1/chat/{session_id}", json={"message": "Weather in Paris?"}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["iterations"] == 2
    assert data["message"]["content"] == "It is 21 degrees in Paris."
    executed = data["tool_calls_executed"]
    assert len(executed) == 1
    assert executed[0]["tool_name"] == "get_weather"
    assert executed[0]["server_id"] == "weather"
    assert executed[0]["is_error"] is False
    assert json.loads(executed[0]["content"]) == {"city": "Paris", "temp_c": 21}
    assert mcp_pool.invocations == [("weather", "get_weather", {"city": "Paris"})]

    offered = [t["function"]["name"] for t in scripted.calls[0]["tools"]]
    assert offered == ["get_weather", "get_forecast"]
    second_call = scripted.calls[1]["messages"]
    assert second_call[-2]["tool_calls"][0]["id"] == "call_1"
    assert second_call[-1]["role"] == "tool"
    assert second_call[-1]["tool_call_id"] == "call_1"

    messages = (await async_client.get(f"/api/v1/sessions/{session_id}/messages")).json()[
        "messages"
    ]
    assert [m["role"] for m in messages] == ["user", "assistant", "tool", "assistant"]
    assert messages[2]["tool_name"] == "get_weather"
    assert messages[2]["server_id"] == "weather"


@pytest.mark.asyncio
async def test_chat_tool_failure_is_reported_to_model(
    async_client: AsyncClient,
    session_id,
    mcp_pool,
    files_tools,
    failing_tool,
    script_llm,
    text_response,
    tool_call_response,
):
    mcp_pool.tools["files"] = files_tools
    failing_tool("read_file", "permission denied")
    scripted = script_llm(
        tool_call_response("read_file", {"path": "/etc/shadow"}),
        text_response("I cannot read that file."),
    )

    response = await async_client.post(
        f"/api/v1/chat/{session_id}", json={"message": "Read /etc/shadow"}
    )

    data = response.json()
    assert data["final_state"] == "completed"
    executed = data["tool_calls_executed"][0]
    assert executed["is_error"] is True
    assert executed["error_code"] == "invocation_failed"
    assert json.loads(scripted.calls[1]["messages"][-1]["content"]) == {
        "error": "permission denied"
    }


@pytest.mark.asyncio
async def test_chat_unknown_tool(
    async_client: AsyncClient, session_id, script_llm, text_response, tool_call_response
):
    """Test that a call to a tool no server exposes is answered with an error."""
    script_llm(
        tool_call_response("launch_rocket", {}),
        text_response("That tool does not exist."),
    )

    response = await async_client.post(f"/api/v1/chat/{session_id}", json={"message": "Go"})

    executed = response.json()["tool_calls_executed"][0]
    assert executed["is_error"] is True
    assert executed["error_code"] == "tool_not_found"
    assert executed["server_id"] is None


@pytest.mark.asyncio
async def test_chat_iteration_limit(
    async_client: AsyncClient,
    session_id,
    test_app,
    mcp_pool,
    weather_tools,
    script_llm,
    tool_call_response,
):
    """Test that a model that never stops calling tools is cut off."""
    test_app.state.settings.max_iterations = 3
    mcp_pool.tools["weather"] = weather_tools
    scripted = script_llm(
        *[tool_call_response("get_weather", {"city": "Paris"}, f"call_{i}") for i in range(5)]
    )

    response = await async_client.post(f"/api/v1/chat/{session_id}", json={"message": "Loop"})

    data = response.json()
    assert data["final_state"] == "iteration_limit"
    assert data["iterations"] == 3
    assert data["notice"] == ITERATION_LIMIT_NOTICE
    assert len(scripted.calls) == 3
    assert len(data["tool_calls_executed"]) == 3


@pytest.mark.asyncio
async def test_chat_empty_response_fallback(async_client: AsyncClient, session_id, script_llm):
    script_llm([])

    response = await async_client.post(f"/api/v1/chat/{session_id}", json={"message": "Hi"})

    assert response.status_code == 200
    assert response.json()["message"]["content"] == EMPTY_RESPONSE_FALLBACK


@pytest.mark.asyncio
async def test_chat_pinned_tools(
    async_client: AsyncClient,
    session_id,
    mcp_pool,
    weather_tools,
    files_tools,
    script_llm,
    text_response,
):
    """Test that mentions restrict the offered tools and record filter metrics."""
    mcp_pool.tools["weather"] = weather_tools
    mcp_pool.tools["files"] = files_tools
    await async_client.post(
        "/api/v1/mentions",
        json={"kind": "tool", "server_id": "files", "tool_name": "read_file"},
    )
    scripted = script_llm(text_response("Ok"))

    await async_client.post(f"/api/v1/chat/{session_id}", json={"message": "Read notes"})

    assert [t["function"]["name"] for t in scripted.calls[0]["tools"]] == ["read_file"]
    messages = (await async_client.get(f"/api/v1/sessions/{session_id}/messages")).json()[
        "messages"
    ]
    metrics_messages = [m for m in messages if m["kind"] == "filter_metrics"]
    assert len(metrics_messages) == 1
    assert metrics_messages[0]["filter_metrics"]["tools_used"] == 1
    assert metrics_messages[0]["filter_metrics"]["tools_total"] == 4


@pytest.mark.asyncio
async def test_chat_regenerate(
    async_client: AsyncClient, session_id, script_llm, text_response
):
    """Test regenerating the last answer with message=None."""
    script_llm(text_response("First answer"), text_response("Second answer"))
    await async_client.post(f"/api/v1/chat/{session_id}", json={"message": "Hi"})

    response = await async_client.post(f"/api/v1/chat/{session_id}", json={"message": None})

    assert response.status_code == 200
    assert response.json()["message"]["content"] == "Second answer"
    messages = (await async_client.get(f"/api/v1/sessions/{session_id}/messages")).json()[
        "messages"
    ]
    assert [m["content"] for m in messages] == ["Hi", "Second answer"]


@pytest.mark.asyncio
async def test_chat_regenerate_empty_session(async_client: AsyncClient, session_id):
    response = await async_client.post(f"/api/v1/chat/{session_id}", json={"message": None})

    assert response.status_code == 400
    assert response.json()["detail"]["error"]["code"] == "empty_history"


@pytest.mark.asyncio
async def test_chat_session_not_found(async_client: AsyncClient):
    response = await async_client.post("/api/v1/chat/nonexistent", json={"message": "Hi"})

    assert response.status_code == 404
    assert response.json()["detail"]["error"]["code"] == "session_not_found"


@pytest.mark.asyncio
async def test_chat_provider_error(async_client: AsyncClient, session_id, script_llm):
    """Test that a failing completion stream maps to 502 and is recorded."""
    script_llm(ConnectionError("connection refused"))

    response = await async_client.post(f"/api/v1/chat/{session_id}", json={"message": "Hi"})

    assert response.status_code == 502
    detail = response.json()["detail"]["error"]
    assert detail["code"] == "llm_error"
    assert "connection refused" in detail["message"]

    messages = (await async_client.get(f"/api/v1/sessions/{session_id}/messages")).json()[
        "messages"
    ]
    assert messages[-1]["role"] == "assistant"
    assert messages[-1]["is_error"] is True


@pytest.mark.asyncio
async def test_chat_session_busy(async_client: AsyncClient, session_id, test_app):
    test_app.state.run_registry.try_acquire(session_id)

    response = await async_client.post(f"/api/v1/chat/{session_id}", json={"message": "Hi"})

    assert response.status_code == 409
    assert response.json()["detail"]["error"]["code"] == "session_busy"


@pytest.mark.asyncio
async def test_cancel_without_active_run(async_client: AsyncClient, session_id):
    response = await async_client.post(f"/api/v1/chat/{session_id}/cancel")

    assert response.status_code == 200
    assert response.json() == {"session_id": session_id, "cancelled": False}


@pytest.mark.asyncio
async def test_run_lock_released_after_chat(
    async_client: AsyncClient, session_id, test_app, script_llm, text_response
):
    script_llm(text_response("One"), text_response("Two"))

    first = await async_client.post(f"/api/v1/chat/{session_id}", json={"message": "a"})
    second = await async_client.post(f"/api/v1/chat/{session_id}", json={"message": "b"})

    assert first.status_code == second.status_code == 200
    assert test_app.state.run_registry.is_active(session_id) is False
