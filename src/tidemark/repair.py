"""Markdown repair for streamed assistant responses.

Backends emit a recurring, bounded set of malformations: code without
fences, headings glued to their hashes, ordinals glued into table cells,
broken separator rows.  :class:`MarkdownRepairEngine` fixes those in two
phases:

1. Structural preprocessing: independent regex rewrites, applied in
   order to the parts of the input outside fenced code blocks.
2. A line scan that tracks code-fence and table context, followed by a
   final whitespace pass.

Every step is a named :class:`~tidemark.transforms.Transform`, so a
failing step is skipped instead of aborting the repair, and steps can
be disabled by name.  The repairs are heuristic; they are not
idempotent on pathological input.
"""

from __future__ import annotations

import itertools
import logging
import re
from collections.abc import Sequence
from enum import Enum

from tidemark.transforms import (
    FENCE,
    Transform,
    apply_transforms,
    fenced_spans,
    outside_fences,
    per_segment,
    regex_transform,
    split_fenced,
    transform,
)

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Phase 1: structural preprocessing
# ------------------------------------------------------------------

_JS_MARKER = re.compile(
    r"^(?:js|javascript)[ \t]*\n((?:[ \t]*\S[^\n]*(?:\n|\Z))+)",
    re.MULTILINE,
)

_KEYWORD_BLOCK = re.compile(
    r"^([ \t]*)(?:while|for|if|function|const|let|var)\b[^\n]*\{[ \t]*\n"
    r"(?:[^\n]*\n)*?"
    r"\1\}(?!`)[^\n]*",
    re.MULTILINE,
)


def _fence_js(match: re.Match) -> str:
    code = match.group(1)
    tail = "\n" if code.endswith("\n") else ""
    return f"{FENCE}javascript\n{code.rstrip(chr(10))}\n{FENCE}{tail}"


@per_segment
@transform
@outside_fences
def fence_js_marker(text: str) -> str:
    """A bare ``js``/``javascript`` line followed by code becomes a fence."""
    return _JS_MARKER.sub(_fence_js, text)


strip_bold_header_ordinal = per_segment(regex_transform(
    "strip_bold_header_ordinal",
    r"\|[ \t]*\*\*([^*\n]+)\*\*[ \t]*\d+\.(?!\d)[ \t]*\|",
    r"| **\1** |",
))

normalize_bare_separator = per_segment(regex_transform(
    "normalize_bare_separator",
    r"\|[ \t]*:[ \t]*---[ \t]*\|",
    "| :--- |",
))


@per_segment
@transform
@outside_fences
def fence_keyword_block(text: str) -> str:
    """Wrap an unfenced multi-line brace block in a ``javascript`` fence.

    The block opens on a line starting with a control-flow or declaration
    keyword and ending in ``{``; it closes at the first ``}`` line with
    the same indentation.
    """
    return _KEYWORD_BLOCK.sub(
        lambda m: f"{FENCE}javascript\n{m.group(0)}\n{FENCE}", text,
    )


# Also rewrites code fenced by the rules above.
repair_template_log = per_segment(regex_transform(
    "repair_template_log",
    r"console\.log\(((?:[^`'\"\n()$]|\$(?!\{))*\$\{[^}\n]+\}[^`'\"\n()]*)\)",
    r"console.log(`\1`)",
    skip_fences=False,
))

strip_cell_ordinal = per_segment(regex_transform(
    "strip_cell_ordinal",
    r"(\|[^\n|]+\|)[ \t]*\d+\.(?!\d)[ \t]*",
    r"\1 ",
))

PREPROCESS_RULES: tuple[Transform, ...] = (
    fence_js_marker,
    strip_bold_header_ordinal,
    normalize_bare_separator,
    fence_keyword_block,
    repair_template_log,
    strip_cell_ordinal,
)


# ------------------------------------------------------------------
# Phase 2: line scan
# ------------------------------------------------------------------

_HEADING = re.compile(r"^([ \t]*)(#{1,6})(?=[^#\s])")
_BULLET = re.compile(r"^[-*•]\s+")
_CELL_ORDINAL = re.compile(r"\|[ \t]*\d+\.(?!\d)[ \t]*")
_SEPARATOR_CELL = re.compile(r"^\s*:?-{3,}:?\s*$")
_SEPARATOR_MARK = re.compile(r"(:?-{3,}:?)")
_PIPE_SPACING = re.compile(r"[ \t]*\|[ \t]*")
_INLINE_SPAN = re.compile(r"`([^`\n]+)`")


class ScanState(Enum):
    OUTSIDE = "outside"
    IN_CODE_BLOCK = "in_code_block"
    IN_TABLE = "in_table"


def is_separator_row(line: str) -> bool:
    cells = line.strip().strip("|").split("|")
    return all(_SEPARATOR_CELL.match(c) for c in cells)


def normalize_table_row(line: str) -> str:
    """Clean one table row: ordinals, separator padding, pipe spacing.

    Applying it to its own output returns the same string.
    """
    line = _CELL_ORDINAL.sub("| ", line)
    if "---" in line and is_separator_row(line):
        line = _SEPARATOR_MARK.sub(r" \1 ", line)
    return _PIPE_SPACING.sub(" | ", line.strip()).strip()


def _strip_span(match: re.Match) -> str:
    inner = match.group(1).strip()
    return f"`{inner}`" if inner else match.group(0)


def normalize_inline_code(line: str) -> str:
    line = line.replace(" `` ", " `")
    return _INLINE_SPAN.sub(_strip_span, line)


class LineScanner:
    """State machine over the lines of a document.

    Fenced code passes through verbatim, including an unterminated fence
    that runs to the end of the input.
    """

    def __init__(self) -> None:
        self.state = ScanState.OUTSIDE
        self.language = ""

    def scan(self, text: str) -> str:
        lines = text.split("\n")
        out: list[str] = []
        for i, line in enumerate(lines):
            out.extend(self.feed(line, lines[i - 1] if i > 0 else None))
        return "\n".join(out)

    def feed(self, line: str, previous: str | None) -> list[str]:
        """Process one line; returns the lines to emit in its place."""
        trimmed = line.strip()
        if trimmed.startswith(FENCE):
            if self.state is ScanState.IN_CODE_BLOCK:
                self.state = ScanState.OUTSIDE
                self.language = ""
            else:
                self.state = ScanState.IN_CODE_BLOCK
                self.language = trimmed[len(FENCE):].strip()
            return [line]
        if self.state is ScanState.IN_CODE_BLOCK:
            return [line]

        if "|" in line and "---" in line:
            self.state = ScanState.IN_TABLE
        elif self.state is ScanState.IN_TABLE and "|" not in line:
            self.state = ScanState.OUTSIDE

        emitted = []
        line = _HEADING.sub(r"\1\2 ", line)
        if _BULLET.match(trimmed) and previous is not None and previous.strip():
            emitted.append("")
        if self.state is ScanState.IN_TABLE:
            line = normalize_table_row(line)
        if "`" in line and FENCE not in line:
            line = normalize_inline_code(line)
        emitted.append(line)
        return emitted


@transform
def line_scan(text: str) -> str:
    return LineScanner().scan(text)


# ------------------------------------------------------------------
# Final pass
# ------------------------------------------------------------------

_BLANK_RUN = re.compile(r"\n{3,}")


@transform
def trim(text: str) -> str:
    return text.strip()


@transform
def collapse_blank_lines(text: str) -> str:
    """Collapse 3+ newlines to one blank line, leaving fenced code alone."""
    spans = fenced_spans(text)

    def repl(match: re.Match) -> str:
        pos = match.start()
        if any(start <= pos < end for start, end in spans):
            return match.group(0)
        return "\n\n"

    return _BLANK_RUN.sub(repl, text)


FINAL_PASS: tuple[Transform, ...] = (trim, collapse_blank_lines)

DEFAULT_TRANSFORMS: tuple[Transform, ...] = (
    *PREPROCESS_RULES, line_scan, *FINAL_PASS,
)


class MarkdownRepairEngine:
    """Applies the repair transforms in order, failing open per step.

    Args:
        transforms: Transforms to run, defaulting to
            :data:`DEFAULT_TRANSFORMS`.
    """

    def __init__(self, transforms: Sequence[Transform] | None = None):
        self.transforms = tuple(
            DEFAULT_TRANSFORMS if transforms is None else transforms
        )

    @property
    def names(self) -> list[str]:
        return [t.name for t in self.transforms]

    def without(self, *names: str) -> MarkdownRepairEngine:
        """Return an engine with the named transforms disabled.

        Raises:
            ValueError: If a name does not match any transform.
        """
        unknown = set(names) - set(self.names)
        if unknown:
            raise ValueError(f"Unknown transforms: {sorted(unknown)}")
        return MarkdownRepairEngine(
            [t for t in self.transforms if t.name not in names]
        )

    def repair(self, text: str) -> str:
        if not text:
            return text
        for segmented, run in itertools.groupby(
            self.transforms, key=lambda t: t.per_segment,
        ):
            run = list(run)
            if segmented:
                text = "".join(
                    segment if fenced else apply_transforms(segment, run)
                    for segment, fenced in split_fenced(text)
                )
            else:
                text = apply_transforms(text, run)
        return text


DEFAULT_ENGINE = MarkdownRepairEngine()


def repair_markdown(text: str) -> str:
    """Repair *text* with the default engine."""
    return DEFAULT_ENGINE.repair(text)
