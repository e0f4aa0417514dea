"""Authentication hooks for the HTTP transport.

Every request currently passes with full access: :class:`NoopAuthMiddleware`
attaches an all-scopes :class:`AuthContext` to the request state. A bearer
token verifier can replace it without touching the routes, since scope checks
only ever read the context through :func:`get_auth_context`.
"""

from dataclasses import dataclass
from datetime import datetime
from http import HTTPStatus
from typing import Final

from starlette.requests import HTTPConnection
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from logpare_mcp.types import AUTHENTICATION_REQUIRED, INSUFFICIENT_SCOPE, JSONRPC_VERSION

SCOPE_DISCOVER: Final[str] = "logs:discover"
"""List available operations and metadata."""
SCOPE_COMPRESS: Final[str] = "logs:compress"
"""Run log compression operations."""
SCOPE_EXPORT: Final[str] = "logs:export"
"""Access full compression results via resources."""

ALL_SCOPES: Final[tuple[str, ...]] = (SCOPE_DISCOVER, SCOPE_COMPRESS, SCOPE_EXPORT)

AUTH_CONTEXT_KEY = "auth_context"


@dataclass(frozen=True)
class AuthContext:
    authenticated: bool
    scopes: tuple[str, ...]
    subject: str | None = None
    expires_at: datetime | None = None


DEFAULT_AUTH_CONTEXT = AuthContext(authenticated=True, scopes=ALL_SCOPES)


def get_auth_context(conn: HTTPConnection) -> AuthContext | None:
    return getattr(conn.state, AUTH_CONTEXT_KEY, None)


class NoopAuthMiddleware:
    """Grants every HTTP request full access."""

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            scope.setdefault("state", {})[AUTH_CONTEXT_KEY] = DEFAULT_AUTH_CONTEXT
        await self.app(scope, receive, send)


class RequireScopesMiddleware:
    """Rejects requests whose auth context lacks one of ``required_scopes``.

    Must run inside an authentication middleware. Unauthenticated requests get
    a 401, authenticated ones missing a scope get a 403, both with a JSON-RPC
    error body.
    """

    def __init__(self, app: ASGIApp, required_scopes: list[str]):
        self.app = app
        self.required_scopes = required_scopes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        context = get_auth_context(HTTPConnection(scope))
        if context is None or not context.authenticated:
            response = _auth_error(HTTPStatus.UNAUTHORIZED, AUTHENTICATION_REQUIRED, "Authentication required")
        elif not all(required in context.scopes for required in self.required_scopes):
            message = f"Insufficient scope. Required: {', '.join(self.required_scopes)}"
            response = _auth_error(HTTPStatus.FORBIDDEN, INSUFFICIENT_SCOPE, message)
        else:
            await self.app(scope, receive, send)
            return
        await response(scope, receive, send)


def require_scopes(app: ASGIApp, required_scopes: list[str]) -> ASGIApp:
    """Wrap ``app`` so it only serves requests holding every scope in ``required_scopes``."""
    return RequireScopesMiddleware(app, required_scopes)


def _auth_error(status: HTTPStatus, code: int, message: str) -> JSONResponse:
    return JSONResponse(
        {"jsonrpc": JSONRPC_VERSION, "error": {"code": code, "message": message}, "id": None},
        status_code=status,
    )
