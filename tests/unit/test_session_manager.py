"""Unit tests for SessionManager CRUD operations.

Tests session manager's ability to create, list, retrieve, update,
and delete sessions with proper model validation.
"""

import time
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from toolloop_server.llm import ModelInfo
from toolloop_server.sessions import (
    ChatSession,
    SessionCreationOptions,
    SessionManager,
    SystemMessage,
    UserMessage,
)


@pytest.fixture
def sessions_dir(tmp_path: Path) -> Path:
    """Create a temporary sessions directory."""
    return tmp_path / "sessions"


@pytest.fixture
def mock_llm_client():
    """Create a mock LLM client that knows one model."""
    mock_client = AsyncMock()
    mock_client.get_model_info.return_value = ModelInfo(
        name="qwen3:14b",
        size_mb=9300.0,
        format="gguf",
        family="qwen3",
        parameter_size="14.8B",
        quantization_level="Q4_K_M",
        capabilities=["completion", "tools"],
        context_length=40960,
    )
    return mock_client


@pytest.mark.asyncio
async def test_create_session(sessions_dir: Path, mock_llm_client):
    """Test creating a new session."""
    manager = SessionManager(sessions_dir, mock_llm_client)

    session = await manager.create_session(SessionCreationOptions(model="qwen3:14b"))

    assert len(session.session_id) == 10
    assert session.model == "qwen3:14b"
    assert session.metadata.format_version == "2.0"
    assert (sessions_dir / f"{session.session_id}.json").exists()


@pytest.mark.asyncio
async def test_create_session_validates_model(sessions_dir: Path, mock_llm_client):
    """Test that create_session validates model exists."""
    manager = SessionManager(sessions_dir, mock_llm_client)
    mock_llm_client.get_model_info.return_value = None

    with pytest.raises(ValueError, match="Model 'nonexistent:model' not found"):
        await manager.create_session(SessionCreationOptions(model="nonexistent:model"))


@pytest.mark.asyncio
async def test_create_session_without_client(sessions_dir: Path):
    """Test creating session without an LLM client (no validation)."""
    manager = SessionManager(sessions_dir, llm_client=None)

    session = await manager.create_session(SessionCreationOptions(model="any:model"))

    assert session.model == "any:model"


@pytest.mark.asyncio
async def test_create_session_with_system_prompt(sessions_dir: Path, mock_llm_client):
    """Test creating a session with a system prompt."""
    manager = SessionManager(sessions_dir, mock_llm_client)

    session = await manager.create_session(
        SessionCreationOptions(
            model="qwen3:14b",
            system_prompt="You are a helpful assistant",
            system_prompt_source_file="helpful.md",
        )
    )

    assert session.metadata.message_count == 1
    assert isinstance(session.messages[0], SystemMessage)
    assert session.messages[0].source_file == "helpful.md"


@pytest.mark.asyncio
async def test_list_sessions_newest_first(sessions_dir: Path):
    """Test that sessions are listed by most recent update."""
    manager = SessionManager(sessions_dir)
    older = await manager.create_session(SessionCreationOptions(model="m"))
    time.sleep(0.01)
    newer = await manager.create_session(SessionCreationOptions(model="m"))

    sessions = manager.list_sessions()

    assert [s.session_id for s in sessions] == [newer.session_id, older.session_id]


def test_list_sessions_skips_corrupt_files(sessions_dir: Path):
    """Test that an unreadable session file does not break listing."""
    manager = SessionManager(sessions_dir)
    ChatSession(session_id="good123456", model="m").save(sessions_dir)
    (sessions_dir / "broken1234.json").write_text("{not json")

    sessions = manager.list_sessions()

    assert [s.session_id for s in sessions] == ["good123456"]


def test_get_and_delete_session(sessions_dir: Path):
    manager = SessionManager(sessions_dir)
    session = ChatSession(session_id="abc1234567", model="m")
    session.add_message(UserMessage(content="Hi"))
    session.save(sessions_dir)

    assert manager.get_messages("abc1234567")[0].content == "Hi"

    manager.delete_session("abc1234567")

    with pytest.raises(FileNotFoundError):
        manager.get_session("abc1234567")
    with pytest.raises(FileNotFoundError):
        manager.delete_session("abc1234567")


@pytest.mark.asyncio
async def test_update_session_model(sessions_dir: Path, mock_llm_client):
    manager = SessionManager(sessions_dir, mock_llm_client)
    session = await manager.create_session(SessionCreationOptions(model="qwen3:14b"))

    updated = await manager.update_session(session.session_id, model="qwen3:32b")

    assert updated.model == "qwen3:32b"
    assert manager.get_session(session.session_id).model == "qwen3:32b"


@pytest.mark.asyncio
async def test_update_session_unknown_model(sessions_dir: Path, mock_llm_client):
    manager = SessionManager(sessions_dir, mock_llm_client)
    session = await manager.create_session(SessionCreationOptions(model="qwen3:14b"))
    mock_llm_client.get_model_info.return_value = None

    with pytest.raises(ValueError):
        await manager.update_session(session.session_id, model="missing")
