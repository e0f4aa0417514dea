"""
LogpareServer - the JSON-RPC method table of the logpare MCP server.

The server is transport agnostic: transports hand it validated JSON-RPC
messages and send back whatever it returns. One server instance is shared by
every session, so tasks created in one session can be polled from another.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ValidationError

from logpare_mcp.prompts import PromptManager, default_prompts
from logpare_mcp.resources import RESOURCE_TEMPLATES, read_resource
from logpare_mcp.shared.exceptions import LogpareError, ToolError
from logpare_mcp.shared.logging import get_logger
from logpare_mcp.tasks.helpers import cancel_task
from logpare_mcp.tasks.runner import TaskRunner
from logpare_mcp.tasks.store import TaskStore
from logpare_mcp.tools import ToolContext, ToolManager, default_tools
from logpare_mcp.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    LATEST_PROTOCOL_VERSION,
    METHOD_NOT_FOUND,
    SUPPORTED_PROTOCOL_VERSIONS,
    CallToolResult,
    ErrorData,
    JSONRPCErrorResponse,
    JSONRPCMessage,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
    JSONRPCResultResponse,
    TaskRecord,
    TextContent,
)

logger = get_logger(__name__)

SERVER_NAME = "logpare-mcp"
SERVER_VERSION = "0.1.0"
INSTRUCTIONS = (
    "Compress repetitive logs before reading them. Large inputs are processed as background "
    "tasks: poll tasks/get with the returned taskId, then read the result with tasks/result or "
    "the logpare://results/{taskId} resource."
)

RequestHandler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]


class InitializeParams(BaseModel):
    protocolVersion: str
    capabilities: dict[str, Any] = {}
    clientInfo: dict[str, Any] | None = None


class CallToolParams(BaseModel):
    name: str
    arguments: dict[str, Any] | None = None


class GetPromptParams(BaseModel):
    name: str
    arguments: dict[str, str] | None = None


class ReadResourceParams(BaseModel):
    uri: str


class TaskParams(BaseModel):
    taskId: str


def _task_to_wire(task: TaskRecord) -> dict[str, Any]:
    return task.model_dump(mode="json", exclude_none=True, exclude={"result"})


class LogpareServer:
    """
    Dispatches JSON-RPC requests to the tools, resources and task methods.

    Args:
        store: Where task records live
        runner: Runs the background compression jobs
        async_threshold_bytes: Inputs at or above this size run as tasks
    """

    def __init__(
        self,
        store: TaskStore,
        runner: TaskRunner,
        *,
        async_threshold_bytes: int = 1024 * 1024,
        name: str = SERVER_NAME,
        version: str = SERVER_VERSION,
        tool_manager: ToolManager | None = None,
        prompt_manager: PromptManager | None = None,
    ) -> None:
        self.name = name
        self.version = version
        self.store = store
        self.runner = runner
        self.tool_manager = tool_manager or ToolManager(tools=default_tools())
        self.prompt_manager = prompt_manager or PromptManager(prompts=default_prompts())
        self._tool_context = ToolContext(runner=runner, async_threshold_bytes=async_threshold_bytes)
        self._connected: set[str | None] = set()

        self.request_handlers: dict[str, RequestHandler] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
            "resources/list": self._list_resources,
            "resources/templates/list": self._list_resource_templates,
            "resources/read": self._read_resource,
            "prompts/list": self._list_prompts,
            "prompts/get": self._get_prompt,
            "tasks/get": self._get_task,
            "tasks/list": self._list_tasks,
            "tasks/cancel": self._cancel_task,
            "tasks/result": self._task_result,
        }

    async def connect(self, session_id: str | None) -> None:
        """Attach a session. Called by a transport before it delivers messages."""
        self._connected.add(session_id)
        logger.debug("Session %s connected", session_id)

    def disconnect(self, session_id: str | None) -> None:
        self._connected.discard(session_id)
        logger.debug("Session %s disconnected", session_id)

    @property
    def connected_sessions(self) -> int:
        return len(self._connected)

    async def handle_message(self, message: JSONRPCMessage, session_id: str | None = None) -> JSONRPCResponse | None:
        """Handle one inbound message. Only requests get a response."""
        if isinstance(message, JSONRPCNotification):
            logger.debug("Ignoring notification %s from session %s", message.method, session_id)
            return None
        if not isinstance(message, JSONRPCRequest):
            logger.debug("Ignoring response message from session %s", session_id)
            return None

        handler = self.request_handlers.get(message.method)
        if handler is None:
            return JSONRPCErrorResponse(
                id=message.id,
                error=ErrorData(code=METHOD_NOT_FOUND, message="Method not found"),
            )

        logger.debug("Dispatching %s for session %s", message.method, session_id)
        try:
            result = await handler(message.params or {})
        except LogpareError as err:
            return JSONRPCErrorResponse(id=message.id, error=err.error)
        except ValidationError as err:
            return JSONRPCErrorResponse(
                id=message.id,
                error=ErrorData(code=INVALID_PARAMS, message=f"Invalid params for {message.method}: {err}"),
            )
        except Exception:
            logger.exception("Unhandled error in %s", message.method)
            return JSONRPCErrorResponse(
                id=message.id,
                error=ErrorData(code=INTERNAL_ERROR, message="Internal error"),
            )
        return JSONRPCResultResponse(id=message.id, result=result)

    async def _initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        request = InitializeParams.model_validate(params)
        if request.protocolVersion in SUPPORTED_PROTOCOL_VERSIONS:
            protocol_version = request.protocolVersion
        else:
            protocol_version = LATEST_PROTOCOL_VERSION
        return {
            "protocolVersion": protocol_version,
            "capabilities": {
                "tools": {"listChanged": False},
                "resources": {"subscribe": False, "listChanged": False},
                "prompts": {"listChanged": False},
                "tasks": {"list": {}, "cancel": {}},
            },
            "serverInfo": {"name": self.name, "version": self.version},
            "instructions": INSTRUCTIONS,
        }

    async def _ping(self, params: dict[str, Any]) -> dict[str, Any]:
        return {}

    async def _list_tools(self, params: dict[str, Any]) -> dict[str, Any]:
        return {"tools": [tool.to_listing() for tool in self.tool_manager.list_tools()]}

    async def _call_tool(self, params: dict[str, Any]) -> dict[str, Any]:
        request = CallToolParams.model_validate(params)
        try:
            result = await self.tool_manager.call_tool(request.name, request.arguments, self._tool_context)
        except ToolError as e:
            logger.warning("%s", e)
            result = CallToolResult(content=[TextContent(text=str(e))], isError=True)
        return result.model_dump(mode="json", exclude_none=True)

    async def _list_resources(self, params: dict[str, Any]) -> dict[str, Any]:
        return {"resources": []}

    async def _list_resource_templates(self, params: dict[str, Any]) -> dict[str, Any]:
        return {"resourceTemplates": RESOURCE_TEMPLATES}

    async def _read_resource(self, params: dict[str, Any]) -> dict[str, Any]:
        request = ReadResourceParams.model_validate(params)
        return await read_resource(self.store, request.uri)

    async def _list_prompts(self, params: dict[str, Any]) -> dict[str, Any]:
        return {"prompts": [prompt.to_listing() for prompt in self.prompt_manager.list_prompts()]}

    async def _get_prompt(self, params: dict[str, Any]) -> dict[str, Any]:
        request = GetPromptParams.model_validate(params)
        prompt = self.prompt_manager.get_prompt(request.name)
        if prompt is None:
            raise LogpareError.invalid_params(f"Unknown prompt: {request.name}")
        try:
            messages = prompt.render(request.arguments)
        except ValueError as e:
            raise LogpareError.invalid_params(str(e)) from e
        return {
            "description": prompt.description,
            "messages": [message.model_dump(mode="json") for message in messages],
        }

    async def _get_task(self, params: dict[str, Any]) -> dict[str, Any]:
        request = TaskParams.model_validate(params)
        task = await self.store.get_task(request.taskId)
        if task is None:
            raise LogpareError.invalid_params(f"Task not found: {request.taskId}")
        return _task_to_wire(task)

    async def _list_tasks(self, params: dict[str, Any]) -> dict[str, Any]:
        return {"tasks": [_task_to_wire(task) for task in await self.store.list_tasks()]}

    async def _cancel_task(self, params: dict[str, Any]) -> dict[str, Any]:
        request = TaskParams.model_validate(params)
        task = await cancel_task(self.store, request.taskId)
        logger.info("Task %s cancelled", task.taskId)
        return _task_to_wire(task)

    async def _task_result(self, params: dict[str, Any]) -> dict[str, Any]:
        """Return the tool result of a finished task.

        A failed or cancelled task yields a tool result with ``isError`` set;
        a task that is still working is an INVALID_PARAMS error.
        """
        request = TaskParams.model_validate(params)
        task = await self.store.get_task(request.taskId)
        if task is None:
            raise LogpareError.invalid_params(f"Task not found: {request.taskId}")

        if task.status == "completed" and task.result is not None:
            return task.result.model_dump(mode="json")
        if task.error is not None:
            result = CallToolResult(
                content=[TextContent(text=f"{task.error.code}: {task.error.message}")],
                isError=True,
            )
            return result.model_dump(mode="json", exclude_none=True)
        raise LogpareError.invalid_params(f"Task {request.taskId} is not completed (status: {task.status})")
