"""Per-iteration tool selection.

The selector decides which tools the model sees for one call, in priority
order:

1. Pinned tools (mentions), bypassing semantic filtering entirely
2. Semantic filtering through an external scorer, when enabled and ready
3. Every tool of every server, capped at MAX_UNFILTERED_TOOLS

Selection never fails a conversation turn. Scorer errors are logged and
the unfiltered fallback is used.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, Sequence

from toolloop_server.core.catalog import CatalogSnapshot
from toolloop_server.core.errors import SelectionDegraded
from toolloop_server.core.types import (
    FilterMetrics,
    Mention,
    MentionKind,
    ScoreResult,
    ToolAttribution,
    ToolRef,
    ToolSchema,
)

logger = logging.getLogger(__name__)

# Providers reject more than 128 tools per request; keep some headroom.
MAX_UNFILTERED_TOOLS = 120


class SemanticScorer(Protocol):
    """Black-box relevance scorer for tools given the conversation."""

    @property
    def is_ready(self) -> bool: ...

    async def score(
        self, turns: list[dict[str, Any]], top_k: int, min_score: float
    ) -> ScoreResult: ...


class SelectionMode(str, Enum):
    PINNED = "pinned"
    SEMANTIC = "semantic"
    UNFILTERED = "unfiltered"


@dataclass
class SelectorConfig:
    """Semantic filtering options."""

    enabled: bool = True
    top_k: int = 22
    min_score: float = 0.30


@dataclass
class SelectionResult:
    """Tools to expose for one model call, with optional metrics."""

    tools: list[ToolSchema]
    metrics: FilterMetrics | None
    mode: SelectionMode
    attribution: list[ToolAttribution] = field(default_factory=list)
    truncated: bool = False

    @property
    def tool_names(self) -> list[str]:
        return [tool.name for tool in self.tools]

    def function_definitions(self) -> list[dict[str, Any]]:
        """OpenAI-format tool definitions, one per distinct tool name."""
        seen: set[str] = set()
        definitions = []
        for tool in self.tools:
            if tool.name in seen:
                logger.warning(f"Skipping duplicate tool name: {tool.name}")
                continue
            seen.add(tool.name)
            definitions.append(tool.to_function_definition())
        return definitions


def conversation_turns(messages: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
    """Drop system messages; the scorer only sees the actual conversation."""
    return [m for m in messages if m.get("role") != "system"]


class ToolSelector:
    """Chooses the bounded tool list for each model call."""

    def __init__(
        self,
        scorer: SemanticScorer | None = None,
        max_unfiltered_tools: int = MAX_UNFILTERED_TOOLS,
    ):
        self.scorer = scorer
        self.max_unfiltered_tools = max_unfiltered_tools

    async def select(
        self,
        conversation: Sequence[dict[str, Any]],
        snapshot: CatalogSnapshot,
        pins: Sequence[Mention],
        config: SelectorConfig | None = None,
    ) -> SelectionResult:
        """Select the tools to expose for one model call.

        Args:
            conversation: Provider-format transcript for the upcoming call
            snapshot: Catalog snapshot taken for this selection
            pins: Snapshot of the user's mentions
            config: Semantic filtering options

        Returns:
            SelectionResult with the tools and, except in fallback mode, metrics
        """
        config = config or SelectorConfig()

        if pins:
            return self._select_pinned(snapshot, pins)

        scorer = self.scorer
        if (
            config.enabled
            and scorer is not None
            and scorer.is_ready
            and not snapshot.is_empty
        ):
            try:
                return await self._select_semantic(
                    scorer, conversation, snapshot, config
                )
            except Exception as e:
                degraded = SelectionDegraded(str(e))
                logger.warning(
                    f"Semantic tool filtering failed, falling back to all tools: {degraded}"
                )

        return self._select_unfiltered(snapshot)

    def _select_pinned(
        self, snapshot: CatalogSnapshot, pins: Sequence[Mention]
    ) -> SelectionResult:
        seen: set[tuple[str, str]] = set()
        tools: list[ToolSchema] = []
        attribution: list[ToolAttribution] = []

        def add(server_id: str, tool: ToolSchema) -> None:
            key = (server_id, tool.name)
            if key in seen:
                return
            seen.add(key)
            tools.append(tool)
            attribution.append(ToolAttribution(tool_name=tool.name, server_id=server_id))

        for mention in pins:
            if mention.kind == MentionKind.SERVER:
                for tool in snapshot.tools_for(mention.server_id):
                    add(mention.server_id, tool)
            else:
                found = _resolve_pinned_tool(snapshot, mention)
                if found is None:
                    logger.debug(f"Pinned tool {mention.tool_name} not in catalog")
                    continue
                add(*found)

        logger.info(f"Using {len(tools)} pinned tools (bypassing semantic filtering)")
        metrics = FilterMetrics(
            tools_used=len(tools),
            tools_total=snapshot.total_tools,
            filter_time_ms=0,
            attribution=tuple(attribution),
        )
        return SelectionResult(
            tools=tools,
            metrics=metrics,
            mode=SelectionMode.PINNED,
            attribution=attribution,
        )

    async def _select_semantic(
        self,
        scorer: SemanticScorer,
        conversation: Sequence[dict[str, Any]],
        snapshot: CatalogSnapshot,
        config: SelectorConfig,
    ) -> SelectionResult:
        result = await scorer.score(
            conversation_turns(conversation), config.top_k, config.min_score
        )

        seen: set[str] = set()
        tools: list[ToolSchema] = []
        attribution: list[ToolAttribution] = []
        for scored in result.tools[: config.top_k]:
            if scored.score < config.min_score or scored.tool_name in seen:
                continue
            found = snapshot.find_tool(scored.tool_name)
            if found is None:
                logger.debug(f"Scorer returned unknown tool {scored.tool_name}")
                continue
            server_id, tool = found
            seen.add(tool.name)
            tools.append(tool)
            attribution.append(ToolAttribution(tool_name=tool.name, server_id=server_id))

        logger.info(
            f"Using {len(tools)}/{snapshot.total_tools} filtered tools "
            f"({result.duration_ms:.1f}ms)"
        )
        metrics = FilterMetrics(
            tools_used=len(tools),
            tools_total=snapshot.total_tools,
            filter_time_ms=result.duration_ms,
            attribution=tuple(attribution),
        )
        return SelectionResult(
            tools=tools,
            metrics=metrics,
            mode=SelectionMode.SEMANTIC,
            attribution=attribution,
        )

    def _select_unfiltered(self, snapshot: CatalogSnapshot) -> SelectionResult:
        seen: set[str] = set()
        tools: list[ToolSchema] = []
        attribution: list[ToolAttribution] = []
        for server_id, tool in snapshot.iter_tools():
            if tool.name in seen:
                logger.warning(f"Skipping duplicate tool: {tool.name}")
                continue
            seen.add(tool.name)
            tools.append(tool)
            attribution.append(ToolAttribution(tool_name=tool.name, server_id=server_id))

        truncated = len(tools) > self.max_unfiltered_tools
        if truncated:
            logger.warning(
                f"Tool count ({len(tools)}) exceeds provider limit, "
                f"using first {self.max_unfiltered_tools} tools"
            )
            tools = tools[: self.max_unfiltered_tools]
            attribution = attribution[: self.max_unfiltered_tools]

        return SelectionResult(
            tools=tools,
            metrics=None,
            mode=SelectionMode.UNFILTERED,
            attribution=attribution,
            truncated=truncated,
        )


def _resolve_pinned_tool(
    snapshot: CatalogSnapshot, mention: Mention
) -> tuple[str, ToolSchema] | None:
    """Look a tool pin up on its own server, then by name anywhere."""
    tool_name = mention.tool_name or ""
    tool = snapshot.resolve(ToolRef(server_id=mention.server_id, tool_name=tool_name))
    if tool is not None:
        return mention.server_id, tool
    return snapshot.find_tool(tool_name)
