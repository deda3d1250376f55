"""Unit tests for catalog snapshots and core value types."""

import pytest

from toolloop_server.core.catalog import CatalogSnapshot, StaticToolCatalog
from toolloop_server.core.types import (
    Mention,
    MentionKind,
    ToolRef,
    ToolResult,
    ToolSchema,
    dedupe_mentions,
)


def test_snapshot_is_isolated_from_catalog(weather_tools, files_tools):
    """Later catalog changes do not leak into an existing snapshot."""
    catalog = StaticToolCatalog({"weather": weather_tools})
    snapshot = CatalogSnapshot.from_catalog(catalog)

    catalog.set_tools("files", files_tools)
    catalog.remove_server("weather")

    assert snapshot.servers == ["weather"]
    assert snapshot.total_tools == 2


def test_find_tool_first_server_wins(weather_tools):
    snapshot = CatalogSnapshot({"a": weather_tools, "b": weather_tools})

    assert snapshot.find_server_for_tool("get_weather") == "a"
    assert snapshot.find_tool("nope") is None


def test_resolve_is_server_scoped(weather_tools, files_tools):
    snapshot = CatalogSnapshot({"weather": weather_tools, "files": files_tools})

    assert snapshot.resolve(ToolRef("files", "read_file")).name == "read_file"
    assert snapshot.resolve(ToolRef("weather", "read_file")) is None


def test_fingerprint_tracks_tool_names(weather_tools, files_tools):
    one = CatalogSnapshot({"weather": weather_tools})
    same = CatalogSnapshot({"weather": list(reversed(weather_tools))})
    more = CatalogSnapshot({"weather": weather_tools, "files": files_tools})

    assert one.fingerprint() == same.fingerprint()
    assert one.fingerprint() != more.fingerprint()


def test_tool_schema_from_mcp_dict():
    tool = ToolSchema.from_dict(
        {"name": "echo", "inputSchema": {"type": "object", "properties": {"x": {}}}}
    )

    assert tool.description == ""
    assert tool.to_function_definition()["function"]["parameters"]["properties"] == {
        "x": {}
    }


def test_mention_dedupe_keeps_first():
    mentions = [
        Mention(kind=MentionKind.SERVER, server_id="fs"),
        Mention(kind=MentionKind.TOOL, server_id="fs", tool_name="read_file"),
        Mention(kind=MentionKind.SERVER, server_id="fs"),
        Mention(kind=MentionKind.TOOL, server_id="fs", tool_name="read_file"),
        Mention(kind=MentionKind.TOOL, server_id="other", tool_name="read_file"),
    ]

    unique = dedupe_mentions(mentions)

    assert len(unique) == 3
    assert unique[0].kind == MentionKind.SERVER


def test_tool_mention_requires_name():
    with pytest.raises(ValueError):
        Mention(kind=MentionKind.TOOL, server_id="fs")


def test_tool_result_requires_exactly_one_outcome():
    with pytest.raises(ValueError):
        ToolResult(tool_call_id="c", tool_name="t")
    with pytest.raises(ValueError):
        ToolResult(tool_call_id="c", tool_name="t", payload_json="{}", error_message="x")

