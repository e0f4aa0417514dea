"""Text renderings of mined templates.

``summary``, ``detailed`` and ``json`` are produced by :func:`render`.
``smart`` is the LLM-oriented view built by :func:`format_smart`: templates
grouped by severity, with expected failures (ad blockers, blocked analytics)
and performance violations split out of the error and warning buckets.
"""

import json
import re
from dataclasses import dataclass

from logpare_mcp.compression import WILDCARD, CompressionStats, Template

EXPECTED_FAILURE_PATTERNS = [
    re.compile(r"ERR_BLOCKED_BY_CLIENT", re.IGNORECASE),
    re.compile(r"net::ERR_", re.IGNORECASE),
    re.compile(r"Failed to fetch", re.IGNORECASE),
    re.compile(r"NetworkError", re.IGNORECASE),
    re.compile(r"blocked by client", re.IGNORECASE),
]

EXPECTED_FAILURE_DOMAINS = [
    "monorail-edge.shopifysvc.com",
    "api.amplitude.com",
    "connect.facebook.net",
    "kameleoon.io",
    "cdn.attn.tv",
    "ping.fastsimon.com",
    "www.google-analytics.com",
    "stats.g.doubleclick.net",
    "www.googletagmanager.com",
    "analytics",
    "tracking",
    "pixel",
    "beacon",
]

_PERFORMANCE_RE = re.compile(r"\[Violation\]|handler took|Forced reflow|Long task", re.IGNORECASE)
_NUMERIC_RE = re.compile(r"^(\d+(?:\.\d+)?)(ms|s|KB|MB|GB|%|px)?$")
_SOURCE_FILE_RE = re.compile(r"([a-zA-Z0-9_-]+(?:[-.][\w]+)*\.(?:js|ts|jsx|tsx|mjs|cjs|py))")
_SUCCESS_PATTERNS = [
    re.compile(r"\b200\b"),
    re.compile(r"\bOK\b"),
    re.compile(r"\bsuccess", re.IGNORECASE),
    re.compile(r"\bcompleted?\b", re.IGNORECASE),
    re.compile(r"\bloaded\b", re.IGNORECASE),
    re.compile(r"\bconnected\b", re.IGNORECASE),
    re.compile(r"\bready\b", re.IGNORECASE),
]


@dataclass(frozen=True)
class NumericRange:
    min: float
    max: float
    avg: float
    unit: str


def is_expected_failure(template: Template) -> bool:
    """True when a template is noise such as an ad blocker rejecting an analytics call."""
    if any(p.search(template.pattern) for p in EXPECTED_FAILURE_PATTERNS):
        return True
    return any(domain in url.lower() for url in template.url_samples for domain in EXPECTED_FAILURE_DOMAINS)


def is_performance_violation(template: Template) -> bool:
    return bool(_PERFORMANCE_RE.search(template.pattern))


def hydrate_pattern(pattern: str, values: list[str]) -> str:
    """Fill ``<*>`` placeholders left to right with ``values``."""
    for value in values:
        pattern = pattern.replace(WILDCARD, value, 1)
    return pattern


def extract_numeric_range(samples: list[list[str]]) -> NumericRange | None:
    values: list[float] = []
    unit = ""
    for sample in samples:
        for value in sample:
            match = _NUMERIC_RE.match(value)
            if match:
                values.append(float(match.group(1)))
                if match.group(2):
                    unit = match.group(2)
    if not values:
        return None
    return NumericRange(
        min=min(values),
        max=max(values),
        avg=round(sum(values) / len(values), 1),
        unit=unit,
    )


def _fmt_number(value: float) -> str:
    return f"{value:g}"


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


def _clean_samples(template: Template) -> list[str]:
    return [value for sample in template.sample_variables for value in sample if value and WILDCARD not in value]


def render(fmt: str, templates: list[Template], stats: CompressionStats, max_templates: int) -> str:
    if fmt == "summary":
        return format_summary(templates, stats, max_templates)
    if fmt == "detailed":
        return format_detailed(templates, stats, max_templates)
    if fmt == "json":
        return format_json(templates, stats, max_templates)
    raise ValueError(f"invalid output format: {fmt!r}")


def format_summary(templates: list[Template], stats: CompressionStats, max_templates: int) -> str:
    lines = [
        "=== Log Compression Summary ===",
        f"Input: {stats.input_lines:,} lines -> {stats.unique_templates} templates "
        f"({stats.compression_ratio * 100:.1f}% compression)",
        "",
    ]
    for template in templates[:max_templates]:
        lines.append(f"[{template.occurrences}x] {template.pattern}")
    remaining = len(templates) - max_templates
    if remaining > 0:
        lines.append(f"... and {remaining} more templates")
    return "\n".join(lines)


def format_detailed(templates: list[Template], stats: CompressionStats, max_templates: int) -> str:
    lines = [
        "=== Log Compression Details ===",
        f"Input lines: {stats.input_lines:,}",
        f"Unique templates: {stats.unique_templates}",
        f"Compression ratio: {stats.compression_ratio * 100:.1f}%",
        "",
    ]
    for template in templates[:max_templates]:
        lines.append(f"{template.id} [{template.occurrences}x] [{template.severity}] {template.pattern}")
        lines.append(f"    Lines: {template.first_seen}-{template.last_seen}")
        for sample in template.sample_variables:
            lines.append(f"    Sample: {', '.join(sample)}")
        if template.full_url_samples:
            lines.append(f"    URLs: {', '.join(template.full_url_samples)}")
    remaining = len(templates) - max_templates
    if remaining > 0:
        lines.append(f"... and {remaining} more templates")
    return "\n".join(lines)


def format_json(templates: list[Template], stats: CompressionStats, max_templates: int) -> str:
    payload = {
        "stats": {
            "inputLines": stats.input_lines,
            "uniqueTemplates": stats.unique_templates,
            "compressionRatio": stats.compression_ratio,
        },
        "templates": [
            {
                "id": t.id,
                "pattern": t.pattern,
                "occurrences": t.occurrences,
                "severity": t.severity,
                "samples": t.sample_variables,
            }
            for t in templates[:max_templates]
        ],
    }
    return json.dumps(payload, separators=(",", ":"))


def _related_stack_frames(error: Template, templates: list[Template], limit: int) -> list[Template]:
    frames = [t for t in templates if t.is_stack_frame]
    if not frames:
        return []

    files = {match.lower() for match in _SOURCE_FILE_RE.findall(error.pattern)}
    urls = [url.lower() for url in error.url_samples]

    def mentions_error(frame: Template) -> bool:
        text = frame.pattern.lower()
        return any(name in text for name in files) or any(url in text for url in urls)

    related = [frame for frame in frames if mentions_error(frame)] or frames
    return sorted(related, key=lambda t: -t.occurrences)[:limit]


def _format_enhanced(template: Template) -> list[str]:
    lines = [f"[{template.occurrences}x] {hydrate_pattern(template.pattern, _clean_samples(template))}"]
    if template.url_samples:
        lines.append(f"        Domains: {', '.join(template.url_samples[:3])}")
    samples = [
        ", ".join(v for v in sample if v and len(v) < 80 and WILDCARD not in v) for sample in template.sample_variables
    ]
    samples = [s for s in samples if s]
    if samples:
        lines.append("        Samples:")
        lines.extend(f"          - {_truncate(s, 70)}" for s in samples[:3])
    return lines


def _format_performance(template: Template) -> list[str]:
    numeric = extract_numeric_range(template.sample_variables)
    if numeric is not None:
        span = f"{_fmt_number(numeric.min)}-{_fmt_number(numeric.max)}{numeric.unit}"
        pattern = template.pattern.replace(f"took {WILDCARD}", f"took {span}", 1)
    else:
        pattern = template.pattern.replace(f"took {WILDCARD}", "took <N>ms", 1)
    lines = [f"[{template.occurrences}x] {pattern}"]
    samples = _clean_samples(template)
    if samples:
        lines.append(f"        Samples: {', '.join(samples[:5])}")
    return lines


def _is_success(template: Template) -> bool:
    return any(p.search(template.pattern) for p in _SUCCESS_PATTERNS)


def _section_overflow(items: list[Template], shown: int, noun: str) -> list[str]:
    if len(items) > shown:
        return [f"   ... and {len(items) - shown} more {noun}"]
    return []


def format_smart(templates: list[Template], stats: CompressionStats) -> str:
    lines = [
        "=== Log Analysis ===",
        f"Source: {stats.input_lines:,} lines -> {stats.unique_templates} unique patterns",
        "",
    ]

    errors = [t for t in templates if t.severity == "error" and not t.is_stack_frame]
    impacting = [t for t in errors if not is_expected_failure(t)]
    expected = [t for t in errors if is_expected_failure(t)]
    warnings = [t for t in templates if t.severity == "warning" and not t.is_stack_frame]
    violations = [t for t in warnings if is_performance_violation(t)]
    other_warnings = [t for t in warnings if not is_performance_violation(t)]
    info = [t for t in templates if t.severity == "info" and not t.is_stack_frame]
    frames = [t for t in templates if t.is_stack_frame]

    lines.append("## ERRORS (User-Impacting)")
    if impacting:
        for template in impacting[:3]:
            lines.extend(_format_enhanced(template))
            related = _related_stack_frames(template, templates, 5)
            if related:
                lines.append("        Stack (first occurrence):")
                lines.extend(f"          {frame.pattern}" for frame in related)
        for template in impacting[3:10]:
            lines.extend(_format_enhanced(template))
        lines.extend(_section_overflow(impacting, 10, "errors"))
    else:
        lines.append("   None detected")
    lines.append("")

    if expected:
        total = sum(t.occurrences for t in expected)
        lines.append("## EXPECTED FAILURES (Ad Blocker / Network)")
        lines.append(f"   [{total} total across {len(expected)} patterns]")
        lines.append("")
        for template in expected[:5]:
            lines.extend(_format_enhanced(template))
        lines.extend(_section_overflow(expected, 5, "expected failures"))
        lines.append("")
        lines.append("   Action: Expected behavior for users with ad blockers. No fix needed.")
        lines.append("")

    if violations:
        lines.append("## PERFORMANCE VIOLATIONS")
        for template in violations[:10]:
            lines.extend(_format_performance(template))
        lines.extend(_section_overflow(violations, 10, "violations"))
        lines.append("")

    if other_warnings:
        lines.append("## WARNINGS (Review)")
        for template in other_warnings[:10]:
            lines.extend(_format_enhanced(template))
        lines.extend(_section_overflow(other_warnings, 10, "warnings"))
        lines.append("")

    successes = [t for t in info if _is_success(t)]
    if successes:
        total = sum(t.occurrences for t in successes)
        lines.append("## SUCCESS SIGNALS")
        lines.append(f"   [{total:,} occurrences showing system is working]")
        lines.extend(f"   [{t.occurrences}x] {t.pattern}" for t in successes[:5])
        lines.extend(_section_overflow(successes, 5, "success patterns"))
        lines.append("")

    noise = [t for t in info if not _is_success(t)]
    if noise:
        total = sum(t.occurrences for t in noise)
        lines.append("## INFO (Noise)")
        lines.append(f"   {len(noise)} patterns, {total:,} total occurrences")
        lines.append("")

    if frames:
        total = sum(t.occurrences for t in frames)
        lines.append("## STACK TRACES")
        lines.append(f"   {len(frames)} frame patterns, {total:,} total occurrences")
        lines.append("")

    lines.append("---")
    lines.append(
        f"Compression: {stats.compression_ratio * 100:.1f}% | "
        f"Token reduction: ~{stats.estimated_token_reduction * 100:.0f}%"
    )
    return "\n".join(lines)
