"""Unit tests for ChatSession class.

Tests session creation, message management, editing, persistence,
and format compatibility.
"""

import json
from pathlib import Path

import pytest

from toolloop_server.sessions import (
    AssistantMessage,
    ChatSession,
    SystemMessage,
    ToolMessage,
    UserMessage,
)
from toolloop_server.sessions.types import SYSTEM_FILTER_METRICS, utc_timestamp


def test_create_new_session():
    """Test creating a new ChatSession."""
    session = ChatSession(session_id="test123", model="qwen3:14b")

    assert session.session_id == "test123"
    assert session.model == "qwen3:14b"
    assert len(session.messages) == 0
    assert session.metadata.session_id == "test123"
    assert session.metadata.message_count == 0
    assert session.metadata.format_version == "2.0"


def test_add_multiple_messages():
    """Test adding multiple messages updates count correctly."""
    session = ChatSession(session_id="test123", model="qwen3:14b")
    now = utc_timestamp()

    session.add_message(UserMessage(content="Hello", message_id="msg1", timestamp=now))
    session.add_message(
        AssistantMessage(content="Hi!", model="qwen3:14b", message_id="msg2", timestamp=now)
    )
    session.add_message(UserMessage(content="How are you?", message_id="msg3", timestamp=now))

    assert len(session.messages) == 3
    assert session.metadata.message_count == 3


def test_edit_message_truncates_tool_exchange():
    """Test editing a user message drops the tool calls that followed it."""
    session = ChatSession(session_id="test123", model="qwen3:14b")
    session.add_message(UserMessage(content="Weather in Paris?", message_id="msg1"))
    session.add_message(
        AssistantMessage(
            content="",
            model="qwen3:14b",
            message_id="msg2",
            tool_calls=[
                {
                    "id": "c1",
                    "type": "function",
                    "function": {"name": "get_weather", "arguments": "{}"},
                }
            ],
        )
    )
    session.add_message(
        ToolMessage(tool_call_id="c1", tool_name="get_weather", content="{}", message_id="msg3")
    )
    session.add_message(AssistantMessage(content="Sunny", message_id="msg4"))

    session.edit_message(0, "Weather in Rome?")

    assert len(session.messages) == 1
    assert session.messages[0].content == "Weather in Rome?"
    assert session.metadata.message_count == 1


def test_edit_message_invalid_index():
    """Test editing with invalid index raises IndexError."""
    session = ChatSession(session_id="test123", model="qwen3:14b")
    session.add_message(UserMessage(content="Hello", message_id="msg1"))

    with pytest.raises(IndexError):
        session.edit_message(5, "New content")


def test_edit_non_user_message():
    """Test editing a non-user message raises ValueError."""
    session = ChatSession(session_id="test123", model="qwen3:14b")
    session.add_message(AssistantMessage(content="Hi!", message_id="msg1"))

    with pytest.raises(ValueError, match="Can only edit user messages"):
        session.edit_message(0, "New content")


def test_update_model():
    """Test updating the model updates metadata."""
    session = ChatSession(session_id="test123", model="qwen3:14b")

    session.update_model("gpt-4o-mini")

    assert session.model == "gpt-4o-mini"
    assert session.metadata.model == "gpt-4o-mini"


def test_system_prompt_lifecycle():
    """Test setting, replacing and removing the system prompt."""
    session = ChatSession(session_id="test123", model="qwen3:14b")
    session.add_message(UserMessage(content="Hi", message_id="msg1"))

    session.set_system_prompt("Be brief.", source_file="brief.md")
    assert session.has_system_prompt()
    assert session.messages[0].content == "Be brief."
    assert session.messages[0].source_file == "brief.md"

    session.set_system_prompt("Be verbose.")
    assert len(session.messages) == 2
    assert session.messages[0].content == "Be verbose."

    session.remove_system_prompt()
    assert not session.has_system_prompt()
    with pytest.raises(ValueError):
        session.remove_system_prompt()


def test_synthetic_system_message_is_not_a_prompt():
    session = ChatSession(session_id="test123", model="qwen3:14b")
    session.add_message(SystemMessage(content="Using 2/9 tools", kind=SYSTEM_FILTER_METRICS))

    assert session.has_system_prompt() is False


def test_save_and_load_all_message_types(tmp_path: Path):
    """Test session with all message types can be saved and loaded."""
    now = utc_timestamp()
    session = ChatSession(session_id="test123", model="qwen3:14b")
    session.add_message(
        SystemMessage(content="You are helpful", source_file="helpful.md", message_id="m1", timestamp=now)
    )
    session.add_message(UserMessage(content="Hello", message_id="m2", timestamp=now))
    session.add_message(
        AssistantMessage(
            content="",
            model="qwen3:14b",
            message_id="m3",
            timestamp=now,
            prompt_tokens=5,
            completion_tokens=10,
            tool_calls=[
                {
                    "id": "c1",
                    "type": "function",
                    "function": {"name": "echo", "arguments": '{"x": 1}'},
                }
            ],
        )
    )
    session.add_message(
        ToolMessage(
            tool_call_id="c1",
            tool_name="echo",
            server_id="utils",
            content='{"x": 1}',
            execution_time_ms=3.5,
            message_id="m4",
            timestamp=now,
        )
    )
    session.add_message(
        SystemMessage(
            content="Using 1/3 tools",
            kind=SYSTEM_FILTER_METRICS,
            filter_metrics={"tools_used": 1, "tools_total": 3},
            message_id="m5",
            timestamp=now,
        )
    )

    session.save(tmp_path)
    loaded = ChatSession.load("test123", tmp_path)

    assert [type(m) for m in loaded.messages] == [
        SystemMessage,
        UserMessage,
        AssistantMessage,
        ToolMessage,
        SystemMessage,
    ]
    assert loaded.messages[0].source_file == "helpful.md"
    assert loaded.messages[2].completion_tokens == 10
    assert loaded.messages[2].tool_calls[0]["id"] == "c1"
    assert loaded.messages[3].server_id == "utils"
    assert loaded.messages[4].filter_metrics == {"tools_used": 1, "tools_total": 3}
    assert loaded.messages[4].is_synthetic


def test_load_ignores_unknown_fields(tmp_path: Path):
    """Test that extra keys written by other versions do not break loading."""
    data = {
        "metadata": {
            "session_id": "old1234567",
            "model": "llama3:8b",
            "created_at": "2024-01-01T00:00:00Z",
            "updated_at": "2024-01-01T00:00:00Z",
        },
        "messages": [
            {"role": "user", "content": "Hi", "message_id": "a", "timestamp": ""},
            {"role": "assistant", "content": "Yo", "eval_count": 3},
        ],
    }
    with open(tmp_path / "old1234567.json", "w") as f:
        json.dump(data, f)

    loaded = ChatSession.load("old1234567", tmp_path)

    assert loaded.messages[1].content == "Yo"
    assert loaded.metadata.format_version == "2.0"


def test_load_nonexistent_session(tmp_path: Path):
    """Test loading a nonexistent session raises FileNotFoundError."""
    with pytest.raises(FileNotFoundError):
        ChatSession.load("nonexistent", tmp_path)


def test_save_is_atomic(tmp_path: Path):
    """Test that no temporary file is left behind after saving."""
    sessions_dir = tmp_path / "nested" / "sessions"
    session = ChatSession(session_id="test123", model="qwen3:14b")

    session.save(sessions_dir)

    assert (sessions_dir / "test123.json").exists()
    assert list(sessions_dir.glob("*.tmp")) == []


def test_generate_session_id():
    """Test generating session IDs."""
    id1 = ChatSession.generate_session_id()
    id2 = ChatSession.generate_session_id()

    assert len(id1) == 10
    assert id1 != id2
    assert all(c in "0123456789abcdef" for c in id1)


def test_get_preview_truncated():
    session = ChatSession(session_id="test123", model="qwen3:14b")
    session.add_message(SystemMessage(content="System"))
    session.add_message(UserMessage(content="x" * 150))

    preview = session.get_preview()

    assert len(preview) == 100
    assert preview.endswith("...")


def test_last_user_index():
    session = ChatSession(session_id="test123", model="qwen3:14b")
    assert session.last_user_index() is None

    session.add_message(UserMessage(content="one"))
    session.add_message(AssistantMessage(content="two"))
    session.add_message(UserMessage(content="three"))
    session.add_message(ToolMessage(tool_call_id="c", content="{}"))

    assert session.last_user_index() == 2
