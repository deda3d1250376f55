"""Unit tests for RunRegistry and orchestrator events."""

import json

import pytest

from toolloop_server.core.events import DoneEvent, ToolResultEvent, to_sse
from toolloop_server.core.runs import RunRegistry


@pytest.mark.asyncio
async def test_one_run_per_session():
    registry = RunRegistry()

    first = registry.try_acquire("s1")
    second = registry.try_acquire("s1")
    other = registry.try_acquire("s2")

    assert first is not None
    assert second is None
    assert other is not None
    assert registry.is_active("s1") and registry.is_active("s2")


@pytest.mark.asyncio
async def test_release_allows_new_run():
    registry = RunRegistry()
    registry.try_acquire("s1")

    registry.release("s1")

    assert registry.is_active("s1") is False
    assert registry.try_acquire("s1") is not None


@pytest.mark.asyncio
async def test_cancel_sets_event():
    registry = RunRegistry()
    cancel_event = registry.try_acquire("s1")

    assert registry.cancel("s1") is True
    assert cancel_event.is_set()
    assert registry.cancel("missing") is False


def test_release_unknown_session_is_noop():
    RunRegistry().release("nobody")


def test_to_sse_frame():
    """Events render as named SSE frames with a JSON body."""
    frame = to_sse(DoneEvent(final_state="completed", iterations=2, tool_invocations=1))

    assert frame["event"] == "done"
    data = json.loads(frame["data"])
    assert data == {
        "event": "done",
        "final_state": "completed",
        "iterations": 2,
        "tool_invocations": 1,
    }


def test_tool_result_event_defaults():
    event = ToolResultEvent(
        iteration=1, tool_call_id="c1", tool_name="get_weather", content="{}"
    )

    assert event.event == "tool_result"
    assert event.is_error is False
    assert event.server_id is None
