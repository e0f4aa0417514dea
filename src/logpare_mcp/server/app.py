"""Wiring of the HTTP application.

:class:`LogpareServices` holds the long-lived objects (task store, job runner,
session registry and the JSON-RPC server). They are created explicitly and
passed to whatever needs them; nothing is kept at module level.
"""

from __future__ import annotations

import contextlib
from collections.abc import AsyncIterator
from dataclasses import dataclass

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from logpare_mcp.server.auth import NoopAuthMiddleware
from logpare_mcp.server.server import LogpareServer
from logpare_mcp.server.session_registry import SessionRegistry
from logpare_mcp.server.session_router import SessionRouter
from logpare_mcp.server.transport import CloseCallback, JSONRPCTransport
from logpare_mcp.settings import Settings
from logpare_mcp.shared.logging import get_logger
from logpare_mcp.tasks.in_memory_task_store import InMemoryTaskStore
from logpare_mcp.tasks.runner import TaskRunner
from logpare_mcp.tasks.store import TaskStore

logger = get_logger(__name__)


@dataclass
class LogpareServices:
    settings: Settings
    store: TaskStore
    runner: TaskRunner
    registry: SessionRegistry
    server: LogpareServer

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        *,
        store: TaskStore | None = None,
        registry: SessionRegistry | None = None,
    ) -> LogpareServices:
        settings = settings or Settings()
        if store is None:
            store = InMemoryTaskStore(
                default_ttl=settings.task_ttl_ms,
                poll_interval=settings.task_poll_interval_ms,
                cleanup_interval=settings.task_cleanup_interval_seconds,
            )
        if registry is None:
            registry = SessionRegistry(
                session_timeout=settings.session_timeout_seconds,
                sweep_interval=settings.session_sweep_interval_seconds,
            )
        runner = TaskRunner(store)
        server = LogpareServer(store, runner, async_threshold_bytes=settings.async_threshold_bytes)
        return cls(settings=settings, store=store, runner=runner, registry=registry, server=server)

    @contextlib.asynccontextmanager
    async def run(self) -> AsyncIterator[None]:
        """Start the background work of every service; stop it in reverse order on exit."""
        async with contextlib.AsyncExitStack() as stack:
            if isinstance(self.store, InMemoryTaskStore):
                await stack.enter_async_context(self.store.run())
            await stack.enter_async_context(self.runner.run())
            await stack.enter_async_context(self.registry.run())
            logger.info("logpare MCP services started")
            yield
        logger.info("logpare MCP services stopped")

    def create_transport(self, session_id: str, on_close: CloseCallback) -> JSONRPCTransport:
        return JSONRPCTransport(session_id, self.server, on_close=on_close)


def create_app(services: LogpareServices | None = None, settings: Settings | None = None) -> Starlette:
    """Build the Starlette app that serves MCP on ``settings.path`` and ``/health``.

    The lifespan runs ``services.run()``. Clients that bypass the lifespan (such
    as ``httpx.ASGITransport``) must enter ``services.run()`` themselves.
    """
    services = services or LogpareServices.create(settings)
    router = SessionRouter(services.registry, services.create_transport)

    async def health(request: Request) -> JSONResponse:
        return JSONResponse({"status": "ok", "sessions": services.registry.count()})

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        async with services.run():
            yield

    app = Starlette(
        routes=[
            Route(services.settings.path, endpoint=NoopAuthMiddleware(router), methods=["GET", "POST", "DELETE"]),
            Route("/health", endpoint=health, methods=["GET"]),
        ],
        lifespan=lifespan,
    )
    app.state.services = services
    return app
