"""The ``compress_logs`` tool.

Small inputs are compressed within the request. Inputs at or above the async
threshold, or calls with ``use_task`` set, become background tasks: the call
returns the task id straight away and the result is read later through
``tasks/get``, ``tasks/result`` or the ``logpare://`` resources.
"""

import time
from dataclasses import asdict
from typing import Any, Literal

import anyio.to_thread
from pydantic import BaseModel, Field

from logpare_mcp.compression import CompressionOptions, CompressionResult, Template, compress
from logpare_mcp.formatting import (
    extract_numeric_range,
    format_smart,
    hydrate_pattern,
    is_expected_failure,
    is_performance_violation,
)
from logpare_mcp.shared.logging import get_logger
from logpare_mcp.tasks.runner import Job, ProgressCallback
from logpare_mcp.tools.base import Tool, ToolContext, text_result
from logpare_mcp.types import CallToolResult, TaskResult, TextContent

logger = get_logger(__name__)

DESCRIPTION = """Compress repetitive logs for LLM context windows. Uses the Drain algorithm to \
extract log templates, achieving 60-90% token reduction while preserving all diagnostic \
information. Best for large log dumps with repetitive patterns.

For inputs of 1MB or more, automatically uses async task-based processing (poll for results)."""


class CompressLogsArgs(BaseModel):
    logs: str = Field(description="Raw log content as a multi-line string")
    format: Literal["smart", "summary", "detailed", "json"] = Field(
        default="smart",
        description=(
            "Output format: 'smart' (default, LLM-optimized with severity grouping), 'summary' (compact), "
            "'detailed' (full templates), 'json' (machine-readable)"
        ),
    )
    max_templates: int = Field(
        default=50, ge=1, le=500, description="Maximum number of templates to include in output (default: 50)"
    )
    depth: int | None = Field(
        default=None, ge=2, le=6, description="Drain algorithm parse tree depth. Higher = more specific templates (default: 4)"
    )
    threshold: float | None = Field(
        default=None,
        ge=0,
        le=1,
        description="Similarity threshold for grouping logs. Lower = more aggressive grouping (default: 0.4)",
    )
    use_task: bool = Field(default=False, description="Force async task-based processing for large files")


def enrich_template(template: Template) -> dict[str, Any]:
    """Structured view of a template with the diagnostic fields clients rely on."""
    numeric = extract_numeric_range(template.sample_variables)
    first_sample = template.sample_variables[0] if template.sample_variables else []
    return {
        "id": template.id,
        "pattern": template.pattern,
        "occurrences": template.occurrences,
        "severity": template.severity,
        "isStackFrame": template.is_stack_frame,
        "hydratedExample": hydrate_pattern(template.pattern, first_sample),
        "isExpectedFailure": is_expected_failure(template),
        "isPerformanceViolation": is_performance_violation(template),
        "urlSamples": template.url_samples,
        "fullUrlSamples": template.full_url_samples,
        "statusCodeSamples": template.status_code_samples,
        "correlationIdSamples": template.correlation_id_samples,
        "durationSamples": template.duration_samples,
        "numericRange": asdict(numeric) if numeric is not None else None,
        "sampleVariables": template.sample_variables,
        "firstSeen": template.first_seen,
        "lastSeen": template.last_seen,
    }


def generate_summary(templates: list[Template]) -> dict[str, int]:
    errors = [t for t in templates if t.severity == "error" and not t.is_stack_frame]
    warnings = [t for t in templates if t.severity == "warning" and not t.is_stack_frame]
    return {
        "userImpactingErrors": sum(1 for t in errors if not is_expected_failure(t)),
        "expectedFailures": sum(1 for t in errors if is_expected_failure(t)),
        "performanceViolations": sum(1 for t in warnings if is_performance_violation(t)),
        "otherWarnings": sum(1 for t in warnings if not is_performance_violation(t)),
        "infoPatterns": sum(1 for t in templates if t.severity == "info" and not t.is_stack_frame),
        "stackTracePatterns": sum(1 for t in templates if t.is_stack_frame),
    }


def run_compression(args: CompressLogsArgs, on_progress: ProgressCallback | None = None) -> tuple[str, dict[str, Any]]:
    """Compress ``args.logs`` and return the rendered text with its structured content."""
    options = CompressionOptions(
        # smart output is rendered from the detailed template list
        format="detailed" if args.format == "smart" else args.format,
        max_templates=args.max_templates,
        on_progress=on_progress,
    )
    if args.depth is not None:
        options.depth = args.depth
    if args.threshold is not None:
        options.sim_threshold = args.threshold

    result: CompressionResult = compress(args.logs, options)
    text = format_smart(result.templates, result.stats) if args.format == "smart" else result.formatted
    structured = {
        "compressionRatio": result.stats.compression_ratio,
        "inputLines": result.stats.input_lines,
        "uniqueTemplates": result.stats.unique_templates,
        "estimatedTokenReduction": result.stats.estimated_token_reduction,
        "summary": generate_summary(result.templates),
        "templates": [enrich_template(t) for t in result.templates[: args.max_templates]],
    }
    return text, structured


def compression_job(args: CompressLogsArgs) -> Job:
    """Wrap a compression request as a job for the task runner."""

    def job(report: ProgressCallback) -> TaskResult:
        started = time.perf_counter()
        text, structured = run_compression(args, on_progress=report)
        structured["processingTimeMs"] = round((time.perf_counter() - started) * 1000)
        return TaskResult(content=[TextContent(text=text)], structuredContent=structured)

    return job


def should_run_as_task(args: CompressLogsArgs, threshold_bytes: int) -> bool:
    return args.use_task or len(args.logs.encode("utf-8")) >= threshold_bytes


async def compress_logs(args: CompressLogsArgs, context: ToolContext) -> CallToolResult:
    if should_run_as_task(args, context.async_threshold_bytes):
        task = await context.runner.submit(compression_job(args))
        logger.debug("Started compression task %s (%d bytes)", task.taskId, len(args.logs))
        return text_result(
            f"Compression task started. Task ID: {task.taskId}\n\n"
            "Poll for status using the task ID. Estimated completion: a few seconds.",
            {
                "taskId": task.taskId,
                "status": task.status,
                "createdAt": task.createdAt.isoformat(),
                "pollInterval": task.pollInterval,
            },
        )

    try:
        text, structured = await anyio.to_thread.run_sync(run_compression, args)
    except ValueError as e:
        return text_result(f"Error compressing logs: {e}", is_error=True)
    return text_result(text, structured)


compress_logs_tool = Tool(
    fn=compress_logs,
    name="compress_logs",
    description=DESCRIPTION,
    arguments_model=CompressLogsArgs,
)
