"""MCP server that compresses repetitive logs for LLM context windows."""

from logpare_mcp.server import LogpareServer, LogpareServices, create_app
from logpare_mcp.settings import Settings

__all__ = ["LogpareServer", "LogpareServices", "Settings", "create_app"]
