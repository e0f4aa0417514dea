from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """logpare MCP server settings.

    All settings can be configured via environment variables with the prefix MCP_.
    For example, MCP_TRANSPORT=http MCP_PORT=8080 serves HTTP on port 8080.
    """

    model_config = SettingsConfigDict(
        env_prefix="MCP_",
        env_file=".env",
        extra="ignore",
    )

    transport: Literal["stdio", "http"] = "stdio"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # HTTP settings
    host: str = "127.0.0.1"
    port: int = 3000
    path: str = "/mcp"

    # Session settings
    session_timeout_seconds: float = Field(default=30 * 60, gt=0)
    session_sweep_interval_seconds: float = Field(default=60, gt=0)

    # Task settings
    task_ttl_ms: int = Field(default=300_000, gt=0)
    task_poll_interval_ms: int = Field(default=1000, gt=0)
    task_cleanup_interval_seconds: float = Field(default=30, gt=0)
    async_threshold_bytes: int = Field(default=1024 * 1024, gt=0)
    """Inputs at or above this size are compressed as background tasks."""

    shutdown_timeout_seconds: float = 5
