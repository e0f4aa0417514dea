"""Drain-style log template mining.

:func:`compress` is the job function the task runner executes. It groups log
lines into templates (a line with its variable tokens replaced by ``<*>``)
and reports progress through an optional callback, which may be invoked from
a worker thread.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Literal
from urllib.parse import urlsplit

from logpare_mcp.types import ProgressEvent

Severity = Literal["error", "warning", "info"]
OutputFormat = Literal["summary", "detailed", "json"]

WILDCARD = "<*>"
MAX_SAMPLES = 3

_URL_RE = re.compile(r"https?://[^\s\"'<>)\]]+")
_ERROR_RE = re.compile(r"\b(error|exception|fatal|failed|failure|panic|critical|uncaught)\b", re.IGNORECASE)
_WARNING_RE = re.compile(r"\b(warn|warning|deprecated|violation|timeout|retry(?:ing)?)\b", re.IGNORECASE)
_STACK_FRAME_RE = re.compile(r"^\s*(at\s+\S+|File \".*\", line \d+|#\d+\s+0x[0-9a-f]+)")
_STATUS_CODE_RE = re.compile(r"\b(?:status(?:[ _]?code)?[=:]?\s*|HTTP/\d(?:\.\d)?\s+)([1-5]\d{2})\b", re.IGNORECASE)
_CORRELATION_ID_RE = re.compile(
    r"\b(?:(?:request|trace|correlation)[-_]?id[=:]\s*([\w-]+)"
    r"|([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}))",
    re.IGNORECASE,
)
_DURATION_RE = re.compile(r"\b\d+(?:\.\d+)?(?:ms|us|s)\b")


@dataclass
class Template:
    id: str
    tokens: list[str]
    occurrences: int = 0
    severity: Severity = "info"
    is_stack_frame: bool = False
    sample_variables: list[list[str]] = field(default_factory=list)
    url_samples: list[str] = field(default_factory=list)
    """Host names of the URLs seen in matching lines."""
    full_url_samples: list[str] = field(default_factory=list)
    status_code_samples: list[str] = field(default_factory=list)
    correlation_id_samples: list[str] = field(default_factory=list)
    duration_samples: list[str] = field(default_factory=list)
    first_seen: int = 0
    last_seen: int = 0

    @property
    def pattern(self) -> str:
        return " ".join(self.tokens)


@dataclass
class CompressionStats:
    input_lines: int
    unique_templates: int
    compression_ratio: float
    estimated_token_reduction: float


@dataclass
class CompressionResult:
    templates: list[Template]
    stats: CompressionStats
    formatted: str


@dataclass
class CompressionOptions:
    format: OutputFormat = "detailed"
    max_templates: int = 50
    depth: int = 4
    """Number of leading tokens (plus the length bucket) used to route a line to its cluster group."""
    sim_threshold: float = 0.4
    on_progress: Callable[[ProgressEvent], None] | None = None
    progress_interval: int = 10_000
    """Lines between two ``clustering`` progress events."""


def _is_variable(token: str) -> bool:
    return any(ch.isdigit() for ch in token) or token.startswith(("http://", "https://"))


def detect_severity(line: str) -> Severity:
    if _ERROR_RE.search(line):
        return "error"
    if _WARNING_RE.search(line):
        return "warning"
    return "info"


def is_stack_frame(line: str) -> bool:
    return bool(_STACK_FRAME_RE.match(line))


class Drain:
    """Fixed-depth clustering of log lines into templates.

    Lines are bucketed by token count and their first ``depth - 2`` tokens;
    inside a bucket a line joins the most similar template when the share of
    matching constant tokens reaches ``sim_threshold``, otherwise it starts a
    new template.
    """

    def __init__(self, depth: int = 4, sim_threshold: float = 0.4) -> None:
        if depth < 2:
            raise ValueError(f"invalid depth {depth}: must be at least 2")
        if not 0 <= sim_threshold <= 1:
            raise ValueError(f"invalid similarity threshold {sim_threshold}: must be within [0, 1]")
        self.depth = depth
        self.sim_threshold = sim_threshold
        self._groups: dict[tuple[object, ...], list[Template]] = {}
        self._templates: list[Template] = []

    def add_line(self, line: str, line_number: int) -> Template:
        raw = line.split()
        masked = [WILDCARD if _is_variable(token) else token for token in raw]
        prefix = tuple(masked[: max(self.depth - 2, 0)])
        key = (len(masked), *prefix)

        group = self._groups.setdefault(key, [])
        template = self._best_match(group, masked)
        if template is None:
            template = Template(
                id=f"t{len(self._templates) + 1:04d}",
                tokens=masked,
                severity=detect_severity(line),
                is_stack_frame=is_stack_frame(line),
                first_seen=line_number,
            )
            group.append(template)
            self._templates.append(template)
        else:
            template.tokens = [t if t == m else WILDCARD for t, m in zip(template.tokens, masked)]

        template.occurrences += 1
        template.last_seen = line_number
        if len(template.sample_variables) < MAX_SAMPLES:
            variables = [token for token, t in zip(raw, template.tokens) if t == WILDCARD]
            if variables:
                template.sample_variables.append(variables)
        for url in _URL_RE.findall(line):
            _add_sample(template.full_url_samples, url)
            host = urlsplit(url).hostname
            if host:
                _add_sample(template.url_samples, host)
        for match in _STATUS_CODE_RE.finditer(line):
            _add_sample(template.status_code_samples, match.group(1))
        for match in _CORRELATION_ID_RE.finditer(line):
            _add_sample(template.correlation_id_samples, match.group(1) or match.group(2))
        for duration in _DURATION_RE.findall(line):
            _add_sample(template.duration_samples, duration)
        return template

    def _best_match(self, group: list[Template], tokens: list[str]) -> Template | None:
        best: Template | None = None
        best_similarity = -1.0
        for template in group:
            similarity = _similarity(template.tokens, tokens)
            if similarity > best_similarity:
                best, best_similarity = template, similarity
        if best is not None and best_similarity >= self.sim_threshold:
            return best
        return None

    def templates(self) -> list[Template]:
        """Templates ordered by occurrence count, most frequent first."""
        return sorted(self._templates, key=lambda t: (-t.occurrences, t.first_seen))


def _add_sample(samples: list[str], value: str) -> None:
    if len(samples) < MAX_SAMPLES and value not in samples:
        samples.append(value)


def _similarity(template: list[str], tokens: list[str]) -> float:
    if not template:
        return 1.0
    same = sum(1 for t, m in zip(template, tokens) if t == m and t != WILDCARD)
    constants = sum(1 for t in template if t != WILDCARD)
    return same / constants if constants else 1.0


def split_lines(text: str) -> list[str]:
    return [line for line in text.splitlines() if line.strip()]


def compress(text: str, options: CompressionOptions | None = None) -> CompressionResult:
    """Mine templates from ``text`` and render them in ``options.format``.

    Raises:
        ValueError: If ``text`` holds no log lines or the options are invalid.
    """
    from logpare_mcp.formatting import render

    options = options or CompressionOptions()
    report = options.on_progress or (lambda event: None)

    lines = split_lines(text)
    if not lines:
        raise ValueError("Input is empty: no log lines to compress")

    total = len(lines)
    drain = Drain(depth=options.depth, sim_threshold=options.sim_threshold)
    report(ProgressEvent(current_phase="parsing", processed_lines=0, total_lines=total))

    for index, line in enumerate(lines, start=1):
        drain.add_line(line, index)
        if index % options.progress_interval == 0 and index < total:
            report(ProgressEvent(current_phase="clustering", processed_lines=index, total_lines=total))

    templates = drain.templates()
    report(ProgressEvent(current_phase="finalizing", processed_lines=total, total_lines=total, percent_complete=100))

    stats = CompressionStats(
        input_lines=total,
        unique_templates=len(templates),
        compression_ratio=round(1 - len(templates) / total, 4),
        estimated_token_reduction=0.0,
    )
    formatted = render(options.format, templates, stats, options.max_templates)
    stats.estimated_token_reduction = round(max(0.0, 1 - len(formatted) / len(text)), 4)
    return CompressionResult(templates=templates, stats=stats, formatted=formatted)
