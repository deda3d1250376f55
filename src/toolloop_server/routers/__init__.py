"""FastAPI routers for API endpoints.

This package contains all route handlers organized by resource type.
Each router module defines endpoints for a specific domain (health, sessions, chat, etc.).
"""

from toolloop_server.routers import chat, health, mentions, models, sessions, tools

__all__ = [
    "chat",
    "health",
    "mentions",
    "models",
    "sessions",
    "tools",
]
