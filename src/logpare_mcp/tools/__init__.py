from logpare_mcp.tools.analyze import analyze_log_patterns_tool
from logpare_mcp.tools.base import Tool, ToolContext, ToolManager
from logpare_mcp.tools.compress import compress_logs_tool
from logpare_mcp.tools.estimate import estimate_compression_tool


def default_tools() -> list[Tool]:
    return [compress_logs_tool, analyze_log_patterns_tool, estimate_compression_tool]


__all__ = ["Tool", "ToolContext", "ToolManager", "default_tools"]
