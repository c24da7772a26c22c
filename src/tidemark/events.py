"""Streaming events emitted during an exchange."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class StreamEvent:
    """Base for all streaming events."""


@dataclass
class ServiceDetectedEvent(StreamEvent):
    """The backend announced (or changed) the serving provider."""

    service: str = ""


@dataclass
class ContentDeltaEvent(StreamEvent):
    """A content delta arrived.

    ``raw_text`` is the unformatted running accumulation, the text live
    views render.  ``preview`` is the delta alone, repaired and formatted;
    it is never stored or folded back into the accumulation.
    """

    content: str = ""
    raw_text: str = ""
    preview: str = ""


@dataclass
class ExchangeCompleteEvent(StreamEvent):
    """Final event, only yielded when the stream completed.

    Aborted or failed exchanges end without it.
    """

    result: Any = None
