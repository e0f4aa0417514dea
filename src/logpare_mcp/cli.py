"""Command line entry point: ``logpare-mcp [--transport stdio|http]``."""

from typing import Any

import anyio
import click
import uvicorn

from logpare_mcp.server.app import LogpareServices, create_app
from logpare_mcp.server.stdio import serve_stdio
from logpare_mcp.settings import Settings
from logpare_mcp.shared.logging import configure_logging, get_logger

logger = get_logger(__name__)


async def _run_stdio(services: LogpareServices) -> None:
    async with services.run():
        await serve_stdio(services.server)


@click.command()
@click.option("--transport", type=click.Choice(["stdio", "http"]), default=None, help="Transport to serve MCP on")
@click.option("--host", default=None, help="Interface to bind in http mode")
@click.option("--port", type=int, default=None, help="Port to listen on in http mode")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Logging level",
)
def main(transport: str | None, host: str | None, port: int | None, log_level: str | None) -> int:
    overrides: dict[str, Any] = {
        "transport": transport,
        "host": host,
        "port": port,
        "log_level": log_level.upper() if log_level else None,
    }
    settings = Settings(**{key: value for key, value in overrides.items() if value is not None})
    configure_logging(settings.log_level)

    services = LogpareServices.create(settings)
    if settings.transport == "stdio":
        anyio.run(_run_stdio, services)
        return 0

    logger.info("Starting server on http://%s:%d%s", settings.host, settings.port, settings.path)
    uvicorn.run(
        create_app(services),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        timeout_graceful_shutdown=int(settings.shutdown_timeout_seconds),
    )
    return 0
