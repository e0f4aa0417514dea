"""Wire and record types shared by the task store, the runner and the server.

The JSON-RPC envelope models mirror the subset of MCP framing the server
speaks. Task records are immutable values; every state change goes through
:meth:`TaskRecord.apply_patch`, which returns a new record.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Annotated, Any, Final, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

LATEST_PROTOCOL_VERSION: Final[str] = "2025-06-18"
SUPPORTED_PROTOCOL_VERSIONS: Final[tuple[str, ...]] = ("2024-11-05", "2025-03-26", "2025-06-18")

JSONRPC_VERSION: Final[str] = "2.0"

# Standard JSON-RPC error codes
PARSE_ERROR: Final[int] = -32700
INVALID_REQUEST: Final[int] = -32600
METHOD_NOT_FOUND: Final[int] = -32601
INVALID_PARAMS: Final[int] = -32602
INTERNAL_ERROR: Final[int] = -32603

# Server-defined error codes
INVALID_SESSION: Final[int] = -32000
AUTHENTICATION_REQUIRED: Final[int] = -32001
INSUFFICIENT_SCOPE: Final[int] = -32002

# Error codes attached to terminal task records
TASK_CANCELLED: Final[str] = "CANCELLED"
TASK_INVALID_INPUT: Final[str] = "INVALID_INPUT"
TASK_INPUT_TOO_LARGE: Final[str] = "INPUT_TOO_LARGE"
TASK_COMPRESSION_FAILED: Final[str] = "COMPRESSION_FAILED"

DEFAULT_TASK_TTL_MS: Final[int] = 300_000
DEFAULT_POLL_INTERVAL_MS: Final[int] = 1000

RequestId = Annotated[int, Field(strict=True)] | str


class JSONRPCBase(BaseModel):
    """Base class for all JSON-RPC messages."""

    model_config = ConfigDict(extra="allow")

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION


class JSONRPCRequest(JSONRPCBase):
    """A request that expects a response."""

    id: RequestId
    method: str
    params: dict[str, Any] | None = None


class JSONRPCNotification(JSONRPCBase):
    """A notification which does not expect a response."""

    method: str
    params: dict[str, Any] | None = None


class ErrorData(BaseModel):
    """Error information in a JSON-RPC error response."""

    model_config = ConfigDict(extra="allow")

    code: int
    message: str
    data: Any | None = None


class JSONRPCResultResponse(JSONRPCBase):
    """A successful (non-error) response to a request."""

    id: RequestId
    result: dict[str, Any]


class JSONRPCErrorResponse(JSONRPCBase):
    """A response to a request that indicates an error occurred."""

    id: RequestId | None = None
    error: ErrorData


JSONRPCResponse = JSONRPCResultResponse | JSONRPCErrorResponse
JSONRPCMessage = JSONRPCRequest | JSONRPCNotification | JSONRPCResponse

jsonrpc_message_adapter: TypeAdapter[JSONRPCMessage] = TypeAdapter(JSONRPCMessage)


def is_initialize_request(body: Any) -> bool:
    """Return True when a raw request body is an ``initialize`` request."""
    return isinstance(body, dict) and body.get("method") == "initialize" and "id" in body


class TextContent(BaseModel):
    """Text provided to or from an LLM."""

    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class CallToolResult(BaseModel):
    """The server's response to a tool call."""

    content: list[TextContent]
    structuredContent: dict[str, Any] | None = None
    isError: bool = False


TaskStatus = Literal["working", "completed", "failed", "cancelled"]
TaskPhase = Literal["parsing", "clustering", "categorizing", "formatting", "finalizing"]


class TaskProgress(BaseModel):
    """Progress snapshot of a task that is still working."""

    model_config = ConfigDict(frozen=True)

    percent: int = Field(ge=0, le=100)
    statusMessage: str
    currentPhase: TaskPhase
    processedLines: int | None = None
    totalLines: int | None = None


class TaskResult(BaseModel):
    """Payload of a completed task."""

    model_config = ConfigDict(frozen=True)

    content: list[TextContent]
    structuredContent: dict[str, Any]


class TaskError(BaseModel):
    """Outcome of a failed or cancelled task."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str


class TaskRecord(BaseModel):
    """State of one asynchronous job."""

    model_config = ConfigDict(frozen=True)

    taskId: str
    status: TaskStatus
    createdAt: datetime
    lastUpdatedAt: datetime
    ttl: int
    """Milliseconds after ``createdAt`` when the record becomes eligible for deletion."""
    pollInterval: int
    progress: TaskProgress | None = None
    result: TaskResult | None = None
    error: TaskError | None = None

    def apply_patch(self, **changes: Any) -> "TaskRecord":
        """Return a copy with ``changes`` applied and ``lastUpdatedAt`` refreshed."""
        now = datetime.now(timezone.utc)
        changes["lastUpdatedAt"] = max(now, self.createdAt)
        return self.model_copy(update=changes)

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return (now - self.createdAt).total_seconds() * 1000 > self.ttl


@dataclass(frozen=True)
class ProgressEvent:
    """A progress notification emitted by a running job."""

    current_phase: Literal["parsing", "clustering", "finalizing"]
    processed_lines: int
    total_lines: int | None = None
    percent_complete: int | None = None


def response_to_wire(response: JSONRPCResponse) -> dict[str, Any]:
    """Serialize a response for the wire. Error responses always carry ``id``, even when null."""
    if isinstance(response, JSONRPCErrorResponse):
        error = response.error.model_dump(mode="json", exclude_none=True)
        return {"jsonrpc": JSONRPC_VERSION, "id": response.id, "error": error}
    return {"jsonrpc": JSONRPC_VERSION, "id": response.id, "result": response.result}
