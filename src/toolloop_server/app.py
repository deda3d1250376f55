"""FastAPI application factory and lifespan management.

This module contains the create_app() factory function that creates and configures
the FastAPI application instance, including lifespan management for startup/shutdown
and router registration.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from toolloop_server.config import ToolLoopSettings
from toolloop_server.core.catalog import CatalogSnapshot
from toolloop_server.core.dispatcher import ToolDispatcher
from toolloop_server.core.runs import RunRegistry
from toolloop_server.core.selector import ToolSelector
from toolloop_server.filtering import EmbeddingToolScorer
from toolloop_server.llm import LLMClient, OllamaClient, OpenAICompatibleClient
from toolloop_server.mcp import McpConnectionPool, load_server_configs
from toolloop_server.mentions import MentionStore
from toolloop_server.routers import chat, health, mentions, models, sessions, tools

logger = logging.getLogger(__name__)


def create_llm_client(settings: ToolLoopSettings) -> LLMClient:
    """Create the client for the configured provider."""
    if settings.provider == "openai":
        return OpenAICompatibleClient(
            base_url=settings.openai_base_url,
            api_key=settings.openai_api_key,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
        )
    return OllamaClient(
        host=settings.ollama_host,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan context manager for FastAPI application.

    Expensive objects (the LLM client, MCP connections, the tool scorer)
    are created once at startup and stored in app.state for reuse across
    all requests.

    Args:
        app: The FastAPI application instance.

    Yields:
        None: Control is yielded while the app is running.
    """
    settings: ToolLoopSettings = app.state.settings

    # Startup: LLM client
    app.state.llm_client = create_llm_client(settings)
    logger.info(f"Initialized {settings.provider} client")

    connected = await app.state.llm_client.check_connection()
    if connected:
        logger.info(f"Successfully connected to {settings.provider}")
    else:
        logger.warning(f"Could not connect to {settings.provider} - check if it is running")

    # MCP servers
    try:
        server_configs = load_server_configs(settings.resolved_mcp_servers_file)
    except ValueError as e:
        logger.error(f"{e} - starting without MCP servers")
        server_configs = []
    app.state.mcp_pool = McpConnectionPool(server_configs)
    await app.state.mcp_pool.connect_all()

    # Tool selection and dispatch
    scorer = None
    if settings.tool_filter_enabled:
        scorer = EmbeddingToolScorer(
            embedder=app.state.llm_client,
            model=settings.embedding_model,
            context_messages=settings.tool_filter_context_messages,
            max_context_chars=settings.tool_filter_max_context_chars,
        )
        await scorer.sync(CatalogSnapshot.from_catalog(app.state.mcp_pool))
    app.state.scorer = scorer
    app.state.selector = ToolSelector(scorer=scorer)
    app.state.dispatcher = ToolDispatcher(
        backend=app.state.mcp_pool, timeout=settings.tool_call_timeout
    )

    # Pins and runs
    app.state.mention_store = MentionStore(settings.resolved_mentions_file)
    app.state.mention_store.load()
    app.state.run_registry = RunRegistry()

    yield

    # Shutdown: Clean up resources
    if hasattr(app.state, "mcp_pool"):
        await app.state.mcp_pool.close()
    if hasattr(app.state, "llm_client"):
        await app.state.llm_client.close()
        logger.info("LLM client closed")


def create_app(settings: ToolLoopSettings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    This factory function creates a FastAPI instance with all routers,
    middleware, and configuration applied. It can accept an optional
    settings object for testing or explicit configuration.

    Args:
        settings: Optional ToolLoopSettings instance. If not provided,
                  settings will be loaded from environment variables.

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    if settings is None:
        from toolloop_server.dependencies import get_settings

        settings = get_settings()

    app = FastAPI(
        title="toolloop-server",
        description="Headless FastAPI server for tool-augmented LLM conversations over MCP",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Store settings in app.state for lifespan access
    app.state.settings = settings

    # Note: FastAPI's type hints for add_middleware are overly strict
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(models.router)
    app.include_router(sessions.router)
    app.include_router(chat.router)
    app.include_router(tools.router)
    app.include_router(mentions.router)

    return app
