from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from logpare_mcp.shared.exceptions import ToolError
from logpare_mcp.shared.logging import get_logger
from logpare_mcp.tasks.runner import TaskRunner
from logpare_mcp.types import CallToolResult, TextContent

logger = get_logger(__name__)


@dataclass
class ToolContext:
    """What a tool handler may use besides its arguments."""

    runner: TaskRunner
    async_threshold_bytes: int


ToolFn = Callable[[Any, ToolContext], Awaitable[CallToolResult]]


def text_result(text: str, structured: dict[str, Any] | None = None, *, is_error: bool = False) -> CallToolResult:
    return CallToolResult(content=[TextContent(text=text)], structuredContent=structured, isError=is_error)


class Tool(BaseModel):
    """Internal tool registration info."""

    fn: ToolFn = Field(exclude=True)
    name: str = Field(description="Name of the tool")
    description: str = Field(description="Description of what the tool does")
    arguments_model: type[BaseModel] = Field(exclude=True)

    @property
    def parameters(self) -> dict[str, Any]:
        return self.arguments_model.model_json_schema()

    def to_listing(self) -> dict[str, Any]:
        """The entry returned for this tool by ``tools/list``."""
        return {"name": self.name, "description": self.description, "inputSchema": self.parameters}

    async def run(self, arguments: dict[str, Any] | None, context: ToolContext) -> CallToolResult:
        """Validate ``arguments`` and run the tool."""
        try:
            args = self.arguments_model.model_validate(arguments or {})
        except ValidationError as e:
            return text_result(f"Invalid arguments for tool {self.name}: {e}", is_error=True)

        try:
            return await self.fn(args, context)
        except Exception as e:
            raise ToolError(f"Error executing tool {self.name}: {e}") from e


class ToolManager:
    """Manages the server's tools."""

    def __init__(self, *, tools: list[Tool] | None = None):
        self._tools: dict[str, Tool] = {}
        for tool in tools or []:
            self.add_tool(tool)

    def get_tool(self, name: str) -> Tool | None:
        """Get tool by name."""
        return self._tools.get(name)

    def list_tools(self) -> list[Tool]:
        """List all registered tools."""
        return list(self._tools.values())

    def add_tool(self, tool: Tool) -> Tool:
        existing = self._tools.get(tool.name)
        if existing:
            logger.warning(f"Tool already exists: {tool.name}")
            return existing
        self._tools[tool.name] = tool
        return tool

    async def call_tool(self, name: str, arguments: dict[str, Any] | None, context: ToolContext) -> CallToolResult:
        """Call a tool by name with arguments."""
        tool = self.get_tool(name)
        if not tool:
            raise ToolError(f"Unknown tool: {name}")
        return await tool.run(arguments, context)
