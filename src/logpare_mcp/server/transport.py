"""Session-bound transports.

A transport owns one client connection. The router and the session registry
only depend on the :class:`Transport` protocol; :class:`JSONRPCTransport` is
the implementation that hands JSON-RPC messages to a :class:`LogpareServer`.
"""

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol

from pydantic import ValidationError

from logpare_mcp.shared.exceptions import InvalidSessionError
from logpare_mcp.shared.logging import get_logger
from logpare_mcp.types import (
    INVALID_REQUEST,
    ErrorData,
    JSONRPCErrorResponse,
    JSONRPCNotification,
    jsonrpc_message_adapter,
    response_to_wire,
)

if TYPE_CHECKING:
    from logpare_mcp.server.server import LogpareServer

logger = get_logger(__name__)

CloseCallback = Callable[[str], None]


class Transport(Protocol):
    """A duplex connection owned by exactly one session."""

    @property
    def session_id(self) -> str | None: ...

    @property
    def is_closed(self) -> bool: ...

    on_close: CloseCallback | None

    async def connect(self) -> None:
        """Bind the transport to the server. Raises if the handshake cannot start."""
        ...

    async def handle_request(self, body: Any) -> dict[str, Any] | None:
        """Deliver one inbound message and return the reply, if any."""
        ...

    async def close(self) -> None:
        """Close the connection. Closing twice is a no-op."""
        ...

    async def terminate(self) -> None:
        """Close the connection at the client's request."""
        ...


class JSONRPCTransport:
    """Transport that dispatches JSON-RPC messages to a LogpareServer.

    Args:
        session_id: The session this transport is bound to
        server: The server that handles the messages
        on_close: Called with the session id once the transport closes
    """

    def __init__(
        self,
        session_id: str | None,
        server: "LogpareServer",
        on_close: CloseCallback | None = None,
    ) -> None:
        self._session_id = session_id
        self._server = server
        self.on_close = on_close
        self._connected = False
        self._closed = False
        self._terminated = False

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def is_terminated(self) -> bool:
        return self._terminated

    async def connect(self) -> None:
        if self._closed:
            raise RuntimeError(f"Transport for session {self._session_id} is closed")
        await self._server.connect(self._session_id)
        self._connected = True

    async def handle_request(self, body: Any) -> dict[str, Any] | None:
        if self._closed:
            raise InvalidSessionError()
        if not self._connected:
            raise RuntimeError("Transport is not connected. Make sure to call connect().")

        try:
            message = jsonrpc_message_adapter.validate_python(body)
        except ValidationError as exc:
            logger.debug("Rejecting malformed message: %s", exc)
            return _invalid_request(body)

        # A notification never carries an id; one that does is a request with an unusable id.
        if isinstance(message, JSONRPCNotification) and isinstance(body, dict) and "id" in body:
            logger.debug("Rejecting request with invalid id: %r", body["id"])
            return _invalid_request(body)

        response = await self._server.handle_message(message, session_id=self._session_id)
        if response is None:
            return None
        return response_to_wire(response)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._connected:
            self._server.disconnect(self._session_id)
        if self.on_close is not None and self._session_id is not None:
            self.on_close(self._session_id)

    async def terminate(self) -> None:
        self._terminated = True
        await self.close()


def _invalid_request(body: Any) -> dict[str, Any]:
    request_id = body.get("id") if isinstance(body, dict) else None
    if isinstance(request_id, bool) or not isinstance(request_id, int | str):
        request_id = None
    response = JSONRPCErrorResponse(
        id=request_id,
        error=ErrorData(code=INVALID_REQUEST, message="Invalid Request"),
    )
    return response_to_wire(response)
