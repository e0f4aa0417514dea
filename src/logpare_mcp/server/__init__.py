from logpare_mcp.server.app import LogpareServices, create_app
from logpare_mcp.server.server import LogpareServer
from logpare_mcp.server.session_registry import SessionRegistry
from logpare_mcp.server.session_router import MCP_SESSION_ID_HEADER, SessionRouter
from logpare_mcp.server.stdio import serve_stdio
from logpare_mcp.server.transport import JSONRPCTransport, Transport

__all__ = [
    "MCP_SESSION_ID_HEADER",
    "JSONRPCTransport",
    "LogpareServer",
    "LogpareServices",
    "SessionRegistry",
    "SessionRouter",
    "Transport",
    "create_app",
    "serve_stdio",
]
