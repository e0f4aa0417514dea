import math

import anyio.to_thread
from pydantic import BaseModel, Field

from logpare_mcp.compression import CompressionOptions, compress, split_lines
from logpare_mcp.tools.base import Tool, ToolContext, text_result
from logpare_mcp.types import CallToolResult

DESCRIPTION = (
    "Quickly estimate compression ratio without returning the full compressed output. Use this to "
    "check if a log dump is worth compressing before running full compression."
)


class EstimateCompressionArgs(BaseModel):
    logs: str = Field(description="Raw log content to estimate compression for")


def estimate_tokens(text: str) -> int:
    # Roughly four characters per token
    return math.ceil(len(text) / 4)


def recommend(token_reduction: float) -> tuple[str, str]:
    """Return the (marker, recommendation) pair for an estimated token reduction."""
    if token_reduction > 0.5:
        return "✓", "Good candidate for compression, high repetition detected"
    if token_reduction > 0.2:
        return "△", "Moderate compression potential"
    return "✗", "Limited compression potential, logs have low repetition"


def _estimate(args: EstimateCompressionArgs) -> CallToolResult:
    result = compress(args.logs, CompressionOptions(format="json"))
    stats = result.stats

    original_tokens = estimate_tokens(args.logs)
    compressed_tokens = estimate_tokens(result.formatted)
    saved = original_tokens - compressed_tokens
    marker, recommendation = recommend(stats.estimated_token_reduction)

    text = "\n".join(
        [
            "=== Compression Estimate ===",
            "",
            f"Input: {stats.input_lines:,} lines",
            f"Templates: {stats.unique_templates} unique patterns",
            f"Compression ratio: {stats.compression_ratio * 100:.1f}%",
            "",
            "Estimated tokens:",
            f"  Original: ~{original_tokens:,}",
            f"  Compressed: ~{compressed_tokens:,}",
            f"  Savings: ~{saved:,} tokens ({saved / original_tokens * 100:.1f}%)",
            "",
            f"{marker} {recommendation}",
        ]
    )
    return text_result(
        text,
        {
            "inputLines": stats.input_lines,
            "uniqueTemplates": stats.unique_templates,
            "compressionRatio": stats.compression_ratio,
            "estimatedTokenReduction": stats.estimated_token_reduction,
            "originalTokensEstimate": original_tokens,
            "compressedTokensEstimate": compressed_tokens,
            "tokensSavedEstimate": saved,
            "recommendation": recommendation,
        },
    )


async def estimate_compression(args: EstimateCompressionArgs, context: ToolContext) -> CallToolResult:
    if not split_lines(args.logs):
        return text_result("No log lines found.")
    return await anyio.to_thread.run_sync(_estimate, args)


estimate_compression_tool = Tool(
    fn=estimate_compression,
    name="estimate_compression",
    description=DESCRIPTION,
    arguments_model=EstimateCompressionArgs,
)
