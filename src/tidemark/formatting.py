"""Provider-specific cosmetic formatting.

Each backend has its own habits (Groq is terse, Cerebras mixes Chinese
and English, Moonshot is heavy on emoji), so each registered provider
gets an ordered list of independent transforms, applied once to the
fully repaired response.  Unknown providers pass through untouched.

New providers are added with :meth:`ProviderFormatter.register`::

    formatter.register("mistral", [collapse_blank_lines, normalize_bullets])
"""

from __future__ import annotations

import itertools
import logging
import re
from collections.abc import Mapping, Sequence

from tidemark.repair import collapse_blank_lines
from tidemark.transforms import (
    Transform,
    apply_transforms,
    is_fence,
    outside_fences,
    regex_transform,
    transform,
)

logger = logging.getLogger(__name__)

CJK = "\u3400-\u4dbf\u4e00-\u9fff"
_FLAG = "[\U0001f1e6-\U0001f1ff]{2}"
_PICTOGRAPH = (
    "[\u2600-\u27bf\U0001f000-\U0001f1e5\U0001f200-\U0001f3fa\U0001f400-\U0001faff]"
    "[\U0001f3fb-\U0001f3ff]?\ufe0f?"
)
# One emoji: a flag, or pictographs (skin tone, variation selector) joined by ZWJ.
EMOJI = f"(?:{_FLAG}|{_PICTOGRAPH}(?:\u200d{_PICTOGRAPH})*)"
CLARIFYING_QUESTION = "¿Te ha quedado claro?"
SHORT_REPLY_RULE = "\n\n---"

_BULLET_LINE = re.compile(r"^([ \t]*)[•\-*][ \t]+", re.MULTILINE)
_HEADING_LINE = re.compile(r"^#{1,6}[ \t]+\S")


# ------------------------------------------------------------------
# Groq
# ------------------------------------------------------------------

normalize_bullets = regex_transform(
    "normalize_bullets", _BULLET_LINE.pattern, r"\1• ", re.MULTILINE,
)


@transform
def pad_code_fences(text: str) -> str:
    """Surround each fenced code block with blank lines."""
    lines = text.split("\n")
    out: list[str] = []
    in_code = False
    for i, line in enumerate(lines):
        if is_fence(line):
            if not in_code and out and out[-1].strip():
                out.append("")
            out.append(line)
            if in_code and i + 1 < len(lines) and lines[i + 1].strip():
                out.append("")
            in_code = not in_code
            continue
        out.append(line)
    return "\n".join(out)


@transform
def append_short_reply_rule(text: str) -> str:
    if text and len(text) < 100 and "\n" not in text:
        return text + SHORT_REPLY_RULE
    return text


GROQ_TRANSFORMS: tuple[Transform, ...] = (
    collapse_blank_lines,
    normalize_bullets,
    pad_code_fences,
    append_short_reply_rule,
)


# ------------------------------------------------------------------
# Cerebras
# ------------------------------------------------------------------

space_h2_markers = regex_transform(
    "space_h2_markers", r"^##(?!#)[ \t]*(?=\S)", "## ", re.MULTILINE,
)

_CJK_THEN_LATIN = re.compile(f"([{CJK}])([A-Za-z])")
_LATIN_THEN_CJK = re.compile(f"([A-Za-z])([{CJK}])")


@transform
@outside_fences
def space_cjk_latin(text: str) -> str:
    text = _CJK_THEN_LATIN.sub(r"\1 \2", text)
    return _LATIN_THEN_CJK.sub(r"\1 \2", text)


@transform
def number_bullets(text: str) -> str:
    """Turn bullets into ``1.``, ``2.``, ... numbered over the whole text."""
    counter = itertools.count(1)

    def renumber(segment: str) -> str:
        return _BULLET_LINE.sub(lambda m: f"{m.group(1)}{next(counter)}. ", segment)

    return outside_fences(renumber)(text)


@transform
def separate_headings(text: str) -> str:
    """Put a ``---`` rule under headings that run straight into content."""
    lines = text.split("\n")
    out: list[str] = []
    in_code = False
    for i, line in enumerate(lines):
        out.append(line)
        if is_fence(line):
            in_code = not in_code
            continue
        if in_code or not _HEADING_LINE.match(line) or i + 1 >= len(lines):
            continue
        following = lines[i + 1].strip()
        if following and following != "---":
            out.append("---")
    return "\n".join(out)


CEREBRAS_TRANSFORMS: tuple[Transform, ...] = (
    space_h2_markers,
    space_cjk_latin,
    number_bullets,
    separate_headings,
)


# ------------------------------------------------------------------
# Moonshot
# ------------------------------------------------------------------

space_cjk_punctuation = regex_transform(
    "space_cjk_punctuation", f"([{CJK}])([,.!?])", r"\1 \2",
)

collapse_emoji_runs = regex_transform(
    "collapse_emoji_runs", f"({EMOJI}){EMOJI}+", r"\1",
)

_CJK_THEN_CODE = re.compile(f"([{CJK}])(`[^`\\n]+`)")
_CODE_THEN_CJK = re.compile(f"(`[^`\\n]+`)([{CJK}])")


@transform
@outside_fences
def space_cjk_inline_code(text: str) -> str:
    text = _CJK_THEN_CODE.sub(r"\1 \2", text)
    return _CODE_THEN_CJK.sub(r"\1 \2", text)


@transform
def append_clarifying_question(text: str) -> str:
    stripped = text.rstrip()
    if len(text) > 50 and not stripped.endswith(("!", "?", "！", "？")):
        return f"{stripped}\n\n{CLARIFYING_QUESTION}"
    return text


MOONSHOT_TRANSFORMS: tuple[Transform, ...] = (
    space_cjk_punctuation,
    collapse_emoji_runs,
    space_cjk_inline_code,
    append_clarifying_question,
)


# ------------------------------------------------------------------
# Dispatch
# ------------------------------------------------------------------

def _key(provider_id: str) -> str:
    return provider_id.strip().lower()


class ProviderFormatter:
    """Registry mapping provider ids to ordered transform lists.

    Ids are matched case-insensitively.  Formatting with an unregistered
    or empty id returns the text unchanged.

    Args:
        providers: Initial ``{provider_id: transforms}`` registrations.
    """

    def __init__(
        self, providers: Mapping[str, Sequence[Transform]] | None = None,
    ):
        self._providers: dict[str, tuple[Transform, ...]] = {}
        for provider_id, transforms in (providers or {}).items():
            self.register(provider_id, transforms)

    @property
    def providers(self) -> list[str]:
        return sorted(self._providers)

    def register(self, provider_id: str, transforms: Sequence[Transform]) -> None:
        """Register a provider.

        Raises:
            ValueError: If *provider_id* is empty or already registered.
        """
        key = _key(provider_id)
        if not key:
            raise ValueError("Provider id must not be empty")
        if key in self._providers:
            raise ValueError(f"Provider '{key}' is already registered")
        self._providers[key] = tuple(transforms)
        logger.debug(f"Registered formatter for {key}: {[t.name for t in transforms]}")

    def transforms_for(self, service: str | None) -> tuple[Transform, ...]:
        if not service:
            return ()
        return self._providers.get(_key(service), ())

    def format(self, text: str, service: str | None) -> str:
        transforms = self.transforms_for(service)
        if not transforms:
            return text
        return apply_transforms(text, transforms)


def default_formatter() -> ProviderFormatter:
    """A fresh formatter with the built-in providers registered."""
    return ProviderFormatter({
        "groq": GROQ_TRANSFORMS,
        "cerebras": CEREBRAS_TRANSFORMS,
        "moonshot": MOONSHOT_TRANSFORMS,
    })


DEFAULT_FORMATTER = default_formatter()


def format_response(text: str, service: str | None) -> str:
    """Format *text* for *service* with the built-in providers."""
    return DEFAULT_FORMATTER.format(text, service)
