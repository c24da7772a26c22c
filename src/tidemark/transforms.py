"""Named text transforms and their fail-open composition."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace

logger = logging.getLogger(__name__)

FENCE = "```"


@dataclass(frozen=True)
class Transform:
    """A named, pure ``str -> str`` rewrite.

    A run of consecutive ``per_segment`` transforms is applied by the
    repair engine to each unfenced segment of the text it receives.
    Fences they create themselves are not protected from the rest of
    the run.
    """

    name: str
    func: Callable[[str], str]
    per_segment: bool = False

    def __call__(self, text: str) -> str:
        return self.func(text)


def transform(func: Callable[[str], str]) -> Transform:
    """Decorator turning a plain function into a :class:`Transform`."""
    return Transform(name=func.__name__, func=func)


def per_segment(t: Transform) -> Transform:
    """Mark *t* to run on the unfenced segments of the engine's input."""
    return replace(t, per_segment=True)


def apply_transforms(text: str, transforms: Iterable[Transform]) -> str:
    """Run *transforms* in order.

    A transform that raises is skipped: the text it received is passed
    on unchanged to the next one.
    """
    for t in transforms:
        try:
            text = t(text)
        except Exception as e:
            logger.warning(f"Transform {t.name} failed, skipping: {e}")
    return text


def is_fence(line: str) -> bool:
    return line.strip().startswith(FENCE)


def _lines_keepends(text: str) -> list[str]:
    # Only "\n" separates lines; str.splitlines() also splits on \r and friends.
    lines = [line + "\n" for line in text.split("\n")]
    lines[-1] = lines[-1][:-1]
    return [line for line in lines if line]


def split_fenced(text: str) -> list[tuple[str, bool]]:
    """Split *text* into ``(segment, fenced)`` pairs.

    Fence lines and everything between them belong to fenced segments.
    An unterminated fence runs to the end of the text.  Joining the
    segments gives back *text* exactly.
    """
    segments: list[tuple[str, bool]] = []
    current: list[str] = []
    fenced = False
    for line in _lines_keepends(text):
        if is_fence(line):
            if not fenced:
                if current:
                    segments.append(("".join(current), False))
                current = [line]
                fenced = True
            else:
                current.append(line)
                segments.append(("".join(current), True))
                current = []
                fenced = False
            continue
        current.append(line)
    if current:
        segments.append(("".join(current), fenced))
    return segments


def fenced_spans(text: str) -> list[tuple[int, int]]:
    """Return ``(start, end)`` offsets of the text strictly between fences.

    A span starts at the newline ending an opening fence line and stops
    at the start of the closing fence line, or at the end of the text
    for an unterminated fence.
    """
    spans: list[tuple[int, int]] = []
    offset = 0
    start: int | None = None
    for line in _lines_keepends(text):
        if is_fence(line):
            if start is None:
                start = offset + len(line.rstrip("\n"))
            else:
                spans.append((start, offset))
                start = None
        offset += len(line)
    if start is not None:
        spans.append((start, len(text)))
    return spans


def outside_fences(func: Callable[[str], str]) -> Callable[[str], str]:
    """Wrap *func* so it only rewrites text outside fenced code blocks."""

    def wrapper(text: str) -> str:
        return "".join(
            segment if fenced else func(segment)
            for segment, fenced in split_fenced(text)
        )

    wrapper.__name__ = func.__name__
    wrapper.__doc__ = func.__doc__
    return wrapper


def regex_transform(
    name: str, pattern: str, repl: str | Callable[[re.Match], str],
    flags: int = 0, *, skip_fences: bool = True,
) -> Transform:
    """Build a :class:`Transform` from a single ``re.sub``."""
    compiled = re.compile(pattern, flags)

    def func(text: str) -> str:
        return compiled.sub(repl, text)

    func.__name__ = name
    if skip_fences:
        func = outside_fences(func)
    return Transform(name=name, func=func)
