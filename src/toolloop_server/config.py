"""Configuration module for toolloop-server using pydantic-settings."""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ToolLoopSettings(BaseSettings):
    """Main configuration settings for toolloop-server.

    All settings can be overridden via environment variables with the TOOLLOOP_ prefix.
    For example, TOOLLOOP_OLLAMA_HOST will override the ollama_host setting.
    """

    # Server
    host: str = "127.0.0.1"
    port: int = 8000

    # LLM provider
    provider: Literal["ollama", "openai"] = "ollama"
    ollama_host: str = "http://localhost:11434"
    openai_base_url: str | None = None
    openai_api_key: str | None = None
    default_model: str | None = None
    temperature: float | None = 0.7
    max_tokens: int | None = 2000
    system_prompt: str | None = None

    # Data files (relative to data_dir)
    data_dir: str = "."
    sessions_dir: str = "chat_sessions"
    mentions_file: str = "mentions.json"
    mcp_servers_file: str = "mcp_servers.json"

    # Tool filtering
    tool_filter_enabled: bool = True
    tool_filter_top_k: int = Field(default=22, ge=1)
    tool_filter_min_score: float = Field(default=0.30, ge=-1.0, le=1.0)
    tool_filter_context_messages: int = Field(default=3, ge=1)
    tool_filter_max_context_chars: int = Field(default=2000, ge=1)
    embedding_model: str = "all-minilm"

    # Tool execution
    tool_call_timeout: float = Field(default=60.0, gt=0)
    parallel_tool_calls: bool = False
    max_iterations: int = Field(default=10, ge=1)

    # CORS
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="TOOLLOOP_")

    # --- Resolved paths (computed from data_dir + relative paths) ---

    @property
    def resolved_sessions_dir(self) -> Path:
        """Get the full path to the sessions directory."""
        return Path(self.data_dir) / self.sessions_dir

    @property
    def resolved_mentions_file(self) -> Path:
        """Get the full path to the mentions file."""
        return Path(self.data_dir) / self.mentions_file

    @property
    def resolved_mcp_servers_file(self) -> Path:
        """Get the full path to the MCP server config file."""
        return Path(self.data_dir) / self.mcp_servers_file
