"""Logging utilities for the logpare MCP server."""

import logging
from typing import Literal

# Library code configures only its own namespace logger, never the root logger.
_LOGGER_NAME = "logpare_mcp"


def get_logger(name: str) -> logging.Logger:
    """Get a logger nested under the logpare_mcp namespace.

    Args:
        name: The name of the logger.

    Returns:
        A configured logger instance.
    """
    return logging.getLogger(name)


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO",
) -> None:
    """Configure logging for the server.

    Log records always go to stderr: in stdio mode stdout carries JSON-RPC
    traffic and must not be written to.

    Args:
        level: The log level to use.
    """
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)

    if logger.handlers:
        return

    from rich.console import Console
    from rich.logging import RichHandler

    logger.addHandler(RichHandler(console=Console(stderr=True), rich_tracebacks=True))
