from logpare_mcp.types import INVALID_PARAMS, INVALID_SESSION, ErrorData


class LogpareError(Exception):
    """Exception raised when a request cannot be served.

    It wraps the ErrorData that is sent back to the peer as the ``error`` member
    of a JSON-RPC error response.

    Attributes:
        error: The ErrorData describing the failure
    """

    error: ErrorData

    def __init__(self, error: ErrorData):
        super().__init__(error.message)
        self.error = error

    @classmethod
    def invalid_params(cls, message: str) -> "LogpareError":
        return cls(ErrorData(code=INVALID_PARAMS, message=message))


class InvalidSessionError(LogpareError):
    """Raised for messages that carry a missing, unknown or expired session id."""

    def __init__(self, message: str = "Invalid session"):
        super().__init__(ErrorData(code=INVALID_SESSION, message=message))


class ToolError(Exception):
    """Error raised while running a tool. Reported to the client as a tool result with ``isError`` set."""
