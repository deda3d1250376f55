"""Health check endpoint router."""

import logging

from fastapi import APIRouter, Request

from toolloop_server.core.catalog import CatalogSnapshot
from toolloop_server.models.health import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Health check endpoint.

    Returns the current health status and version of the toolloop-server,
    the LLM provider connectivity and the MCP connection summary.

    Args:
        request: The FastAPI request object.

    Returns:
        HealthResponse: Health status and version information.
    """
    provider = None
    llm_connected = None
    llm_host = None

    if hasattr(request.app.state, "llm_client"):
        llm_client = request.app.state.llm_client
        provider = llm_client.provider
        llm_host = getattr(llm_client, "host", None) or getattr(
            llm_client, "base_url", None
        )
        try:
            llm_connected = await llm_client.check_connection()
            logger.debug(f"LLM connectivity check: {llm_connected}")
        except Exception as e:
            logger.warning(f"LLM connectivity check failed: {e}")
            llm_connected = False

    servers_connected = 0
    servers_total = 0
    tools_total = 0
    if hasattr(request.app.state, "mcp_pool"):
        pool = request.app.state.mcp_pool
        statuses = pool.status()
        servers_total = len(statuses)
        servers_connected = sum(1 for s in statuses if s.connected)
        tools_total = CatalogSnapshot.from_catalog(pool).total_tools

    return HealthResponse(
        status="ok",
        version="0.1.0",
        provider=provider,
        llm_connected=llm_connected,
        llm_host=llm_host,
        mcp_servers_connected=servers_connected,
        mcp_servers_total=servers_total,
        tools_total=tools_total,
    )
