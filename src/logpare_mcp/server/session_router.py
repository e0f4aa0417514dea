"""HTTP entry point that resolves the session of every MCP request."""

from __future__ import annotations

import json
from collections.abc import Callable
from http import HTTPStatus
from typing import Any
from uuid import uuid4

from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import Receive, Scope, Send

from logpare_mcp.server.session_registry import SessionRegistry
from logpare_mcp.server.transport import CloseCallback, Transport
from logpare_mcp.shared.exceptions import InvalidSessionError
from logpare_mcp.shared.logging import get_logger
from logpare_mcp.types import (
    INTERNAL_ERROR,
    INVALID_SESSION,
    JSONRPC_VERSION,
    PARSE_ERROR,
    is_initialize_request,
)

logger = get_logger(__name__)

MCP_SESSION_ID_HEADER = "mcp-session-id"

TransportFactory = Callable[[str, CloseCallback], Transport]
"""Builds the transport for a new session from its id and close callback."""


def _error_response(
    status: HTTPStatus,
    code: int,
    message: str,
    request_id: Any = None,
) -> JSONResponse:
    return JSONResponse(
        {"jsonrpc": JSONRPC_VERSION, "error": {"code": code, "message": message}, "id": request_id},
        status_code=status,
    )


def _reply(payload: dict[str, Any] | None, headers: dict[str, str] | None = None) -> Response:
    if payload is None:
        return Response(status_code=HTTPStatus.ACCEPTED, headers=headers)
    return JSONResponse(payload, headers=headers)


class SessionRouter:
    """
    ASGI app that maps each request to the session it belongs to.

    A POST without a session id must be an ``initialize`` request: it creates
    a session, which is registered only once the handshake succeeded. Every
    other request must carry the ``mcp-session-id`` header of a live session.
    DELETE terminates a session. GET is answered with 405 for live sessions
    because responses are always returned as JSON on the POST itself.

    Args:
        registry: The registry that owns live sessions
        transport_factory: Builds the transport for a new session
    """

    def __init__(self, registry: SessionRegistry, transport_factory: TransportFactory) -> None:
        self.registry = registry
        self.transport_factory = transport_factory

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        if request.method == "POST":
            response = await self._handle_post(request)
        elif request.method == "DELETE":
            response = await self._handle_delete(request)
        elif request.method == "GET":
            response = await self._handle_get(request)
        else:
            response = Response(status_code=HTTPStatus.METHOD_NOT_ALLOWED, headers={"Allow": "GET, POST, DELETE"})
        await response(scope, receive, send)

    async def _handle_post(self, request: Request) -> Response:
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return _error_response(HTTPStatus.BAD_REQUEST, PARSE_ERROR, "Parse error")

        session_id = request.headers.get(MCP_SESSION_ID_HEADER)
        if session_id is None:
            if is_initialize_request(body):
                return await self._create_session(body)
            return _error_response(HTTPStatus.BAD_REQUEST, INVALID_SESSION, "Invalid session")

        entry = self.registry.get(session_id)
        if entry is None:
            logger.debug("Rejecting request for unknown session %s", session_id)
            return _error_response(HTTPStatus.BAD_REQUEST, INVALID_SESSION, "Invalid session")

        self.registry.touch(session_id)
        try:
            reply = await entry.transport.handle_request(body)
        except InvalidSessionError:
            return _error_response(HTTPStatus.BAD_REQUEST, INVALID_SESSION, "Invalid session")
        except Exception:
            logger.exception("Error handling request for session %s", session_id)
            request_id = body.get("id") if isinstance(body, dict) else None
            return _error_response(HTTPStatus.INTERNAL_SERVER_ERROR, INTERNAL_ERROR, "Internal error", request_id)
        return _reply(reply)

    async def _create_session(self, body: dict[str, Any]) -> Response:
        session_id = uuid4().hex
        transport = self.transport_factory(session_id, self._on_transport_closed)

        try:
            await transport.connect()
            reply = await transport.handle_request(body)
        except Exception:
            logger.exception("Failed to initialize session %s", session_id)
            await self._discard(transport)
            return _error_response(
                HTTPStatus.INTERNAL_SERVER_ERROR,
                INTERNAL_ERROR,
                "Internal error: failed to initialize session",
                body.get("id"),
            )

        if reply is None or "error" in reply:
            # The handshake was rejected, e.g. for malformed params
            await self._discard(transport)
            return _reply(reply) if reply is None else JSONResponse(reply, status_code=HTTPStatus.BAD_REQUEST)

        self.registry.register(session_id, transport)
        logger.info("Session %s created", session_id)
        return _reply(reply, headers={MCP_SESSION_ID_HEADER: session_id})

    async def _handle_delete(self, request: Request) -> Response:
        session_id = request.headers.get(MCP_SESSION_ID_HEADER)
        if session_id is None:
            return _error_response(HTTPStatus.BAD_REQUEST, INVALID_SESSION, "Missing session ID")

        entry = self.registry.get(session_id)
        if entry is None:
            return _error_response(HTTPStatus.BAD_REQUEST, INVALID_SESSION, "Invalid session")

        try:
            await entry.transport.terminate()
        except Exception:
            logger.exception("Error terminating session %s", session_id)
        finally:
            self.registry.remove(session_id)
        logger.info("Session %s terminated by client", session_id)
        return Response(status_code=HTTPStatus.OK)

    async def _handle_get(self, request: Request) -> Response:
        session_id = request.headers.get(MCP_SESSION_ID_HEADER)
        if session_id is None:
            return _error_response(HTTPStatus.BAD_REQUEST, INVALID_SESSION, "Missing session ID")
        if self.registry.get(session_id) is None:
            return _error_response(HTTPStatus.BAD_REQUEST, INVALID_SESSION, "Invalid session")

        self.registry.touch(session_id)
        return Response(
            "Server-initiated streams are not supported",
            status_code=HTTPStatus.METHOD_NOT_ALLOWED,
            headers={"Allow": "POST, DELETE"},
        )

    def _on_transport_closed(self, session_id: str) -> None:
        if self.registry.remove(session_id) is not None:
            logger.info("Session %s closed", session_id)

    async def _discard(self, transport: Transport) -> None:
        try:
            await transport.close()
        except Exception:
            logger.exception("Error closing transport for session %s", transport.session_id)
