"""Pydantic models for API request and response schemas.

This package contains all Pydantic models used for validating and
serializing API requests and responses across all endpoints.
"""

from toolloop_server.models.chat import ChatRequest, ChatResponse
from toolloop_server.models.mentions import MentionModel, MentionsResponse
from toolloop_server.models.sessions import (
    CreateSessionRequest,
    SessionResponse,
    SetSessionSystemPromptRequest,
)
from toolloop_server.models.tools import FilterRequest, FilterResponse, ToolsResponse

__all__ = [
    "ChatRequest",
    "ChatResponse",
    "CreateSessionRequest",
    "FilterRequest",
    "FilterResponse",
    "MentionModel",
    "MentionsResponse",
    "SessionResponse",
    "SetSessionSystemPromptRequest",
    "ToolsResponse",
]
