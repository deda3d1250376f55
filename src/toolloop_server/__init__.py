"""toolloop-server: Headless FastAPI server for tool-augmented LLM conversations.

This package provides a REST API and SSE streaming interface that runs
conversations in which the model may call tools from MCP servers, with
per-turn semantic tool selection and pinned mentions.
"""

from toolloop_server.app import create_app

__version__ = "0.1.0"

__all__ = ["create_app", "__version__"]
