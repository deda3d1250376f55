"""Dependency injection providers for FastAPI endpoints.

This module provides FastAPI dependency functions that are used across
multiple routers to inject common dependencies like settings and services.
All long-lived objects live in app.state and are created by the lifespan.
"""

from functools import lru_cache
from typing import Any

from fastapi import HTTPException, Request

from toolloop_server.config import ToolLoopSettings
from toolloop_server.core.dispatcher import ToolDispatcher
from toolloop_server.core.runs import RunRegistry
from toolloop_server.core.selector import ToolSelector
from toolloop_server.filtering import EmbeddingToolScorer
from toolloop_server.llm import LLMClient
from toolloop_server.mcp import McpConnectionPool
from toolloop_server.mentions import MentionStore
from toolloop_server.sessions import SessionManager


@lru_cache
def get_settings() -> ToolLoopSettings:
    """Get the application settings instance.

    This function is cached so that the same settings instance is reused
    across all requests. Settings are loaded from environment variables
    with the TOOLLOOP_ prefix.

    Returns:
        ToolLoopSettings: The application configuration settings.
    """
    return ToolLoopSettings()


def _require_state(request: Request, name: str, label: str) -> Any:
    if not hasattr(request.app.state, name):
        raise HTTPException(status_code=503, detail=f"{label} not initialized")
    return getattr(request.app.state, name)


def get_llm_client(request: Request) -> LLMClient:
    """Get the LLM client from app state.

    Raises:
        HTTPException: If the client is not initialized (503 Service Unavailable).
    """
    return _require_state(request, "llm_client", "LLM client")


def get_mcp_pool(request: Request) -> McpConnectionPool:
    """Get the MCP connection pool from app state."""
    return _require_state(request, "mcp_pool", "MCP connection pool")


def get_tool_selector(request: Request) -> ToolSelector:
    return _require_state(request, "selector", "Tool selector")


def get_tool_dispatcher(request: Request) -> ToolDispatcher:
    return _require_state(request, "dispatcher", "Tool dispatcher")


def get_scorer(request: Request) -> EmbeddingToolScorer | None:
    """Get the tool scorer, None when semantic filtering is disabled."""
    return getattr(request.app.state, "scorer", None)


def get_mention_store(request: Request) -> MentionStore:
    return _require_state(request, "mention_store", "Mention store")


def get_run_registry(request: Request) -> RunRegistry:
    return _require_state(request, "run_registry", "Run registry")


def get_session_manager(request: Request) -> SessionManager:
    """Get a SessionManager instance with app configuration.

    Creates a new SessionManager for each request, using the sessions
    directory from settings and the LLM client from app state.

    Raises:
        HTTPException: If the LLM client is not initialized (503 Service Unavailable).
    """
    # Use settings from app.state instead of cached get_settings()
    # This ensures tests can use their own isolated settings
    settings = request.app.state.settings
    return SessionManager(
        sessions_dir=settings.resolved_sessions_dir,
        llm_client=get_llm_client(request),
    )
