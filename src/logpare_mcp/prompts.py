"""Reusable prompts that guide an LLM through compressed log output."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Literal

from pydantic import BaseModel, Field

from logpare_mcp.shared.logging import get_logger
from logpare_mcp.types import TextContent

logger = get_logger(__name__)


class Message(BaseModel):
    """A message of a rendered prompt."""

    role: Literal["user", "assistant"] = "user"
    content: TextContent

    def __init__(self, content: str | TextContent, **kwargs: Any):
        if isinstance(content, str):
            content = TextContent(text=content)
        super().__init__(content=content, **kwargs)


class PromptArgument(BaseModel):
    """An argument that can be passed to a prompt."""

    name: str = Field(description="Name of the argument")
    description: str | None = Field(None, description="Description of what the argument does")
    required: bool = Field(default=False, description="Whether the argument is required")


class Prompt(BaseModel):
    """A prompt template that can be rendered with arguments."""

    name: str = Field(description="Name of the prompt")
    title: str | None = Field(None, description="Human-readable title of the prompt")
    description: str | None = Field(None, description="Description of what the prompt does")
    arguments: list[PromptArgument] = Field(default_factory=list)
    fn: Callable[..., str] = Field(exclude=True)

    def to_listing(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)

    def render(self, arguments: dict[str, str] | None = None) -> list[Message]:
        """Render the prompt with arguments."""
        arguments = arguments or {}
        missing = sorted(arg.name for arg in self.arguments if arg.required and arg.name not in arguments)
        if missing:
            raise ValueError(f"Missing required arguments: {', '.join(missing)}")

        known = {arg.name for arg in self.arguments}
        return [Message(self.fn(**{k: v for k, v in arguments.items() if k in known}))]


class PromptManager:
    """Manages the server's prompts."""

    def __init__(self, *, prompts: list[Prompt] | None = None):
        self._prompts: dict[str, Prompt] = {}
        for prompt in prompts or []:
            self.add_prompt(prompt)

    def get_prompt(self, name: str) -> Prompt | None:
        """Get prompt by name."""
        return self._prompts.get(name)

    def list_prompts(self) -> list[Prompt]:
        """List all registered prompts."""
        return list(self._prompts.values())

    def add_prompt(self, prompt: Prompt) -> Prompt:
        existing = self._prompts.get(prompt.name)
        if existing:
            logger.warning(f"Prompt already exists: {prompt.name}")
            return existing
        self._prompts[prompt.name] = prompt
        return prompt

    def render_prompt(self, name: str, arguments: dict[str, str] | None = None) -> list[Message]:
        """Render a prompt by name with arguments."""
        prompt = self.get_prompt(name)
        if not prompt:
            raise ValueError(f"Unknown prompt: {name}")
        return prompt.render(arguments)


def _diagnose_errors(compressed_output: str, focus_area: str | None = None) -> str:
    text = f"Analyze these compressed logs for errors:\n\n{compressed_output}\n\n"
    if focus_area:
        text += f"Focus specifically on: {focus_area}\n\n"
    return text + (
        "Provide a structured analysis:\n"
        "1. Error severity ranking (which errors are most critical)\n"
        "2. Root cause hypotheses (what might be causing these errors)\n"
        "3. Correlation patterns (are errors related to each other)\n"
        "4. Recommended investigation steps"
    )


def _find_root_cause(templates: str, stack_traces: str) -> str:
    return (
        "Correlate these error templates with stack traces to find root causes:\n\n"
        f"## Error Templates\n{templates}\n\n"
        f"## Stack Trace Patterns\n{stack_traces}\n\n"
        "Provide:\n"
        "1. Template-to-trace mapping (which templates correspond to which stack traces)\n"
        "2. Root cause identification (the underlying issues)\n"
        "3. Fix recommendations (how to resolve each root cause)\n"
        "4. Priority order (which fixes should be addressed first)"
    )


def _performance_analysis(performance_patterns: str) -> str:
    return (
        f"Analyze these performance patterns from compressed logs:\n\n{performance_patterns}\n\n"
        "Provide:\n"
        "1. Slowest operations (identify the biggest performance bottlenecks)\n"
        "2. Pattern trends (are there timing patterns or degradation over time)\n"
        "3. Resource correlations (what resources might be constrained)\n"
        "4. Optimization recommendations (specific improvements to make)"
    )


def _summarize_logs(compressed_output: str) -> str:
    return (
        f"Summarize these compressed logs and provide insights:\n\n{compressed_output}\n\n"
        "Provide:\n"
        "1. Executive summary (2-3 sentences on overall system health)\n"
        "2. Key findings (most important patterns discovered)\n"
        "3. Anomalies (anything unusual or unexpected)\n"
        "4. Recommended actions (what should be done based on these logs)"
    )


_COMPRESSED_OUTPUT = PromptArgument(
    name="compressed_output", description="Output from compress_logs tool", required=True
)


def default_prompts() -> list[Prompt]:
    return [
        Prompt(
            name="diagnose_errors",
            title="Error Diagnosis",
            description="Systematic analysis of error patterns in compressed logs",
            arguments=[
                _COMPRESSED_OUTPUT,
                PromptArgument(name="focus_area", description="Specific error type to focus on (optional)"),
            ],
            fn=_diagnose_errors,
        ),
        Prompt(
            name="find_root_cause",
            title="Root Cause Analysis",
            description="Correlate error templates with stack traces to identify root causes",
            arguments=[
                PromptArgument(name="templates", description="Error templates from compression", required=True),
                PromptArgument(name="stack_traces", description="Related stack trace patterns", required=True),
            ],
            fn=_find_root_cause,
        ),
        Prompt(
            name="performance_analysis",
            title="Performance Analysis",
            description="Analyze performance violation patterns from compressed logs",
            arguments=[
                PromptArgument(
                    name="performance_patterns",
                    description="Performance-related templates from compression",
                    required=True,
                )
            ],
            fn=_performance_analysis,
        ),
        Prompt(
            name="summarize_logs",
            title="Log Summary",
            description="Generate a comprehensive summary and insights from compressed logs",
            arguments=[_COMPRESSED_OUTPUT],
            fn=_summarize_logs,
        ),
    ]
