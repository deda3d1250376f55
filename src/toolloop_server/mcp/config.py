"""MCP server configuration file.

The file lists the servers to connect to at startup:

    {
        "servers": [
            {"id": "fs", "name": "Filesystem", "transport": "stdio",
             "command": "npx", "args": ["-y", "@modelcontextprotocol/server-filesystem", "."]},
            {"id": "docs", "name": "Docs", "transport": "http",
             "url": "https://example.com/mcp", "headers": {"Authorization": "Bearer ..."}}
        ]
    }

A missing file means no servers.
"""

import json
import logging
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError, model_validator

logger = logging.getLogger(__name__)


class McpServerConfig(BaseModel):
    """Connection settings for one MCP server."""

    id: str = Field(min_length=1, description="Stable server identifier")
    name: str = Field(default="", description="Display name")
    transport: Literal["stdio", "http"] = "stdio"
    command: str | None = None
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] | None = None
    url: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_transport(self) -> "McpServerConfig":
        if self.transport == "stdio" and not self.command:
            raise ValueError(f"Server {self.id}: stdio transport requires 'command'")
        if self.transport == "http" and not self.url:
            raise ValueError(f"Server {self.id}: http transport requires 'url'")
        if not self.name:
            self.name = self.id
        return self


class McpServersFile(BaseModel):
    servers: list[McpServerConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_unique_ids(self) -> "McpServersFile":
        ids = [server.id for server in self.servers]
        duplicates = {sid for sid in ids if ids.count(sid) > 1}
        if duplicates:
            raise ValueError(f"Duplicate server ids: {', '.join(sorted(duplicates))}")
        return self


def load_server_configs(path: Path) -> list[McpServerConfig]:
    """Load server configurations from a JSON file.

    Args:
        path: Path to the servers file

    Returns:
        Server configurations in file order, empty if the file is missing

    Raises:
        ValueError: If the file is not valid JSON or fails validation
    """
    if not path.exists():
        logger.info(f"No MCP server config at {path}, starting without servers")
        return []

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        servers_file = McpServersFile.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as e:
        raise ValueError(f"Invalid MCP server config {path}: {e}") from e

    logger.info(f"Loaded {len(servers_file.servers)} MCP server configs from {path}")
    return servers_file.servers
