"""Session management for toolloop-server.

This package provides session persistence, message history management,
and CRUD operations for chat sessions.
"""

from toolloop_server.sessions.history import SessionHistory
from toolloop_server.sessions.manager import SessionManager
from toolloop_server.sessions.session import ChatSession
from toolloop_server.sessions.types import (
    AssistantMessage,
    Message,
    SessionCreationOptions,
    SessionMetadata,
    SystemMessage,
    ToolMessage,
    UserMessage,
)

__all__ = [
    # Core classes
    "ChatSession",
    "SessionManager",
    "SessionHistory",
    # Message types
    "Message",
    "UserMessage",
    "SystemMessage",
    "AssistantMessage",
    "ToolMessage",
    # Configuration types
    "SessionMetadata",
    "SessionCreationOptions",
]
