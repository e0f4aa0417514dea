import anyio.to_thread
from pydantic import BaseModel, Field

from logpare_mcp.compression import CompressionOptions, CompressionResult, compress, split_lines
from logpare_mcp.tools.base import Tool, ToolContext, text_result
from logpare_mcp.types import CallToolResult

DESCRIPTION = (
    "Extract log templates and patterns without full compression. Shows the structure of logs with "
    "occurrence counts and sample variable values. Useful for understanding log patterns before "
    "deciding on compression settings."
)


class AnalyzeLogPatternsArgs(BaseModel):
    logs: str = Field(description="Raw log content to analyze")
    max_templates: int = Field(
        default=20, ge=1, le=100, description="Maximum number of templates to return (default: 20)"
    )


def _analyze(args: AnalyzeLogPatternsArgs) -> CallToolResult:
    result: CompressionResult = compress(
        args.logs, CompressionOptions(format="detailed", max_templates=args.max_templates)
    )
    top = result.templates[: args.max_templates]

    entries = []
    for index, template in enumerate(top, start=1):
        entry = f"{index}. [{template.occurrences}x] {template.pattern}"
        if template.sample_variables:
            samples = " | ".join(", ".join(sample) for sample in template.sample_variables[:3])
            entry += f"\n   Sample values: {samples}"
        entries.append(entry)

    lines = [
        "=== Log Pattern Analysis ===",
        "",
        f"Lines analyzed: {result.stats.input_lines}",
        f"Unique templates found: {result.stats.unique_templates}",
        f"Potential token reduction: {result.stats.estimated_token_reduction * 100:.1f}%",
        "",
        "Top templates by frequency:",
        "",
        "\n\n".join(entries),
    ]
    if len(result.templates) > args.max_templates:
        lines.append(f"\n... and {len(result.templates) - args.max_templates} more templates")

    return text_result(
        "\n".join(lines),
        {
            "inputLines": result.stats.input_lines,
            "uniqueTemplates": result.stats.unique_templates,
            "estimatedTokenReduction": result.stats.estimated_token_reduction,
            "templates": [
                {
                    "id": t.id,
                    "pattern": t.pattern,
                    "occurrences": t.occurrences,
                    "sampleVariables": t.sample_variables,
                    "firstSeen": t.first_seen,
                    "lastSeen": t.last_seen,
                }
                for t in top
            ],
        },
    )


async def analyze_log_patterns(args: AnalyzeLogPatternsArgs, context: ToolContext) -> CallToolResult:
    if not split_lines(args.logs):
        return text_result("No log lines found to analyze.")
    return await anyio.to_thread.run_sync(_analyze, args)


analyze_log_patterns_tool = Tool(
    fn=analyze_log_patterns,
    name="analyze_log_patterns",
    description=DESCRIPTION,
    arguments_model=AnalyzeLogPatternsArgs,
)
