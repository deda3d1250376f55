"""Tools router.

Exposes the MCP tool catalog, server connection status and the semantic
tool filter, including a dry-run of the per-iteration selection.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request

from toolloop_server.core.catalog import CatalogSnapshot
from toolloop_server.core.selector import SelectorConfig, ToolSelector
from toolloop_server.dependencies import (
    get_mcp_pool,
    get_mention_store,
    get_scorer,
    get_tool_selector,
)
from toolloop_server.filtering import EmbeddingToolScorer
from toolloop_server.mcp import McpConnectionPool
from toolloop_server.mentions import MentionStore
from toolloop_server.models.tools import (
    FilterRequest,
    FilterResponse,
    FilterStatusResponse,
    RefreshResponse,
    ServersResponse,
    ServerStatusResponse,
    ServerTools,
    ToolInfo,
    ToolsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/tools", tags=["tools"])


@router.get("", response_model=ToolsResponse)
async def list_tools(
    pool: Annotated[McpConnectionPool, Depends(get_mcp_pool)],
) -> ToolsResponse:
    """List the tools of every connected server, grouped by server."""
    snapshot = CatalogSnapshot.from_catalog(pool)
    servers = [
        ServerTools(
            server_id=server_id,
            tools=[
                ToolInfo(
                    name=tool.name,
                    description=tool.description,
                    input_schema=tool.input_schema,
                )
                for tool in snapshot.tools_for(server_id)
            ],
        )
        for server_id in snapshot.servers
    ]
    return ToolsResponse(servers=servers, total_tools=snapshot.total_tools)


@router.get("/servers", response_model=ServersResponse)
async def list_servers(
    pool: Annotated[McpConnectionPool, Depends(get_mcp_pool)],
) -> ServersResponse:
    """Connection status of every configured MCP server."""
    return ServersResponse(
        servers=[
            ServerStatusResponse(
                server_id=status.server_id,
                name=status.name,
                transport=status.transport,
                connected=status.connected,
                error=status.error,
                tool_count=status.tool_count,
            )
            for status in pool.status()
        ]
    )


@router.post("/filter", response_model=FilterResponse)
async def filter_tools(
    request_body: FilterRequest,
    request: Request,
    pool: Annotated[McpConnectionPool, Depends(get_mcp_pool)],
    selector: Annotated[ToolSelector, Depends(get_tool_selector)],
    mention_store: Annotated[MentionStore, Depends(get_mention_store)],
    scorer: Annotated[EmbeddingToolScorer | None, Depends(get_scorer)],
) -> FilterResponse:
    """Run the tool selection for a list of messages without calling a model.

    Useful to inspect which tools a conversation would expose.
    """
    settings = request.app.state.settings
    snapshot = CatalogSnapshot.from_catalog(pool)
    if scorer is not None:
        await scorer.sync(snapshot)

    config = SelectorConfig(
        enabled=settings.tool_filter_enabled,
        top_k=request_body.top_k or settings.tool_filter_top_k,
        min_score=(
            request_body.min_score
            if request_body.min_score is not None
            else settings.tool_filter_min_score
        ),
    )
    pins = mention_store.snapshot() if request_body.use_mentions else []
    result = await selector.select(request_body.messages, snapshot, pins, config)

    return FilterResponse(
        mode=result.mode.value,
        tool_names=result.tool_names,
        metrics=result.metrics.to_dict() if result.metrics else None,
        truncated=result.truncated,
    )


@router.get("/filter/status", response_model=FilterStatusResponse)
async def filter_status(
    scorer: Annotated[EmbeddingToolScorer | None, Depends(get_scorer)],
) -> FilterStatusResponse:
    """State of the semantic filter: index size, cache usage, last error."""
    if scorer is None:
        return FilterStatusResponse(enabled=False)
    return FilterStatusResponse(enabled=True, **scorer.stats())


@router.post("/filter/clear-cache", response_model=FilterStatusResponse)
async def clear_filter_cache(
    scorer: Annotated[EmbeddingToolScorer | None, Depends(get_scorer)],
) -> FilterStatusResponse:
    """Drop cached query embeddings."""
    if scorer is None:
        return FilterStatusResponse(enabled=False)
    scorer.clear_cache()
    return FilterStatusResponse(enabled=True, **scorer.stats())


@router.post("/refresh", response_model=RefreshResponse)
async def refresh_tools(
    pool: Annotated[McpConnectionPool, Depends(get_mcp_pool)],
    scorer: Annotated[EmbeddingToolScorer | None, Depends(get_scorer)],
) -> RefreshResponse:
    """Re-list the tools of every connected server and re-index the filter."""
    await pool.refresh()
    snapshot = CatalogSnapshot.from_catalog(pool)

    filter_ready = False
    if scorer is not None:
        filter_ready = await scorer.sync(snapshot)

    logger.info(
        f"Refreshed tools: {snapshot.total_tools} tools on "
        f"{len(snapshot.servers)} servers"
    )
    return RefreshResponse(
        servers_connected=len(snapshot.servers),
        tools_total=snapshot.total_tools,
        filter_ready=filter_ready,
    )
