"""CLI entry point for toolloop-server.

This module provides the command-line interface for starting the server.
It can be invoked as `toolloop-server` (via the script entry point) or
`python -m toolloop_server`.
"""

import argparse
import logging
import sys

import uvicorn

from toolloop_server import __version__, create_app
from toolloop_server.config import ToolLoopSettings


def main() -> None:
    """Main entry point for the toolloop-server CLI.

    Parses command-line arguments and starts the uvicorn server with the
    FastAPI application.
    """
    parser = argparse.ArgumentParser(
        prog="toolloop-server",
        description="Headless FastAPI server for tool-augmented LLM conversations over MCP",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"toolloop-server {__version__}",
    )

    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind the server to (default: 127.0.0.1, can be set via TOOLLOOP_HOST)",
    )

    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind the server to (default: 8000, can be set via TOOLLOOP_PORT)",
    )

    parser.add_argument(
        "--provider",
        type=str,
        default=None,
        choices=["ollama", "openai"],
        help="LLM provider (default: ollama, can be set via TOOLLOOP_PROVIDER)",
    )

    parser.add_argument(
        "--ollama-host",
        type=str,
        default=None,
        help="Ollama server URL (default: http://localhost:11434, can be set via TOOLLOOP_OLLAMA_HOST)",
    )

    parser.add_argument(
        "--openai-base-url",
        type=str,
        default=None,
        help="Base URL of an OpenAI-compatible API (can be set via TOOLLOOP_OPENAI_BASE_URL)",
    )

    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="Default model for new sessions (can be set via TOOLLOOP_DEFAULT_MODEL)",
    )

    parser.add_argument(
        "--data-dir",
        type=str,
        default=None,
        help="Base directory for all data (default: ., can be set via TOOLLOOP_DATA_DIR)",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO, can be set via TOOLLOOP_LOG_LEVEL)",
    )

    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development (uvicorn --reload)",
    )

    args = parser.parse_args()

    # Build settings, CLI args override environment variables
    settings_kwargs = {}
    if args.host is not None:
        settings_kwargs["host"] = args.host
    if args.port is not None:
        settings_kwargs["port"] = args.port
    if args.provider is not None:
        settings_kwargs["provider"] = args.provider
    if args.ollama_host is not None:
        settings_kwargs["ollama_host"] = args.ollama_host
    if args.openai_base_url is not None:
        settings_kwargs["openai_base_url"] = args.openai_base_url
    if args.model is not None:
        settings_kwargs["default_model"] = args.model
    if args.data_dir is not None:
        settings_kwargs["data_dir"] = args.data_dir
    if args.log_level is not None:
        settings_kwargs["log_level"] = args.log_level

    settings = ToolLoopSettings(**settings_kwargs)

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Create the FastAPI app
    app = create_app(settings=settings)

    # Start uvicorn
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=args.reload,
    )


if __name__ == "__main__":
    sys.exit(main())
