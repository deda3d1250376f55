"""Tool catalog contracts and snapshots.

The catalog maps server ids to the tools currently known for them. It is
owned by connection management (see toolloop_server.mcp). The orchestrator
only ever reads a CatalogSnapshot taken at the start of each selection,
so catalog changes during a run are not observed mid-iteration.
"""

import logging
from types import MappingProxyType
from typing import Iterator, Mapping, Protocol, runtime_checkable

from toolloop_server.core.types import ToolRef, ToolSchema

logger = logging.getLogger(__name__)


@runtime_checkable
class ToolCatalog(Protocol):
    """Read-only view of the tools exposed by connected servers."""

    def all_servers(self) -> list[str]: ...

    def list_tools(self, server_id: str) -> list[ToolSchema]: ...


class CatalogSnapshot:
    """Immutable copy of a catalog, iterated in server order."""

    def __init__(self, tools_by_server: Mapping[str, list[ToolSchema]]):
        self._tools: Mapping[str, tuple[ToolSchema, ...]] = MappingProxyType(
            {server_id: tuple(tools) for server_id, tools in tools_by_server.items()}
        )

    @classmethod
    def from_catalog(cls, catalog: ToolCatalog) -> "CatalogSnapshot":
        return cls({sid: list(catalog.list_tools(sid)) for sid in catalog.all_servers()})

    @property
    def servers(self) -> list[str]:
        return list(self._tools.keys())

    @property
    def total_tools(self) -> int:
        return sum(len(tools) for tools in self._tools.values())

    @property
    def is_empty(self) -> bool:
        return self.total_tools == 0

    def tools_for(self, server_id: str) -> tuple[ToolSchema, ...]:
        return self._tools.get(server_id, ())

    def iter_tools(self) -> Iterator[tuple[str, ToolSchema]]:
        """Yield ``(server_id, tool)`` pairs in catalog order."""
        for server_id, tools in self._tools.items():
            for tool in tools:
                yield server_id, tool

    def find_tool(self, tool_name: str) -> tuple[str, ToolSchema] | None:
        """Find the first server exposing ``tool_name``.

        When several servers expose the same name the first one in catalog
        order wins. This is a known routing limitation.
        """
        for server_id, tool in self.iter_tools():
            if tool.name == tool_name:
                return server_id, tool
        return None

    def find_server_for_tool(self, tool_name: str) -> str | None:
        found = self.find_tool(tool_name)
        return found[0] if found else None

    def resolve(self, ref: ToolRef) -> ToolSchema | None:
        for tool in self.tools_for(ref.server_id):
            if tool.name == ref.tool_name:
                return tool
        return None

    def fingerprint(self) -> str:
        """Cheap identity of the catalog shape, used to detect re-index needs."""
        parts = []
        for server_id in sorted(self._tools):
            names = ",".join(sorted(t.name for t in self._tools[server_id]))
            parts.append(f"{server_id}:{names}")
        return "|".join(parts)


class StaticToolCatalog:
    """In-memory catalog, used for tests and fixed tool sets."""

    def __init__(self, tools_by_server: dict[str, list[ToolSchema]] | None = None):
        self._tools: dict[str, list[ToolSchema]] = {
            sid: list(tools) for sid, tools in (tools_by_server or {}).items()
        }

    def all_servers(self) -> list[str]:
        return list(self._tools.keys())

    def list_tools(self, server_id: str) -> list[ToolSchema]:
        return list(self._tools.get(server_id, []))

    def set_tools(self, server_id: str, tools: list[ToolSchema]) -> None:
        self._tools[server_id] = list(tools)
        logger.debug(f"Catalog updated: {server_id} has {len(tools)} tools")

    def remove_server(self, server_id: str) -> None:
        self._tools.pop(server_id, None)
