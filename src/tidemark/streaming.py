"""Streaming primitives for backend responses.

The decoder yields :class:`StreamChunk` objects.  The
:class:`ResponseAccumulator` owns the :class:`StreamState` of one
exchange and builds the canonical, unformatted response text from the
content deltas in arrival order.
"""

from __future__ import annotations

from dataclasses import dataclass

from tidemark.errors import StreamClosedError

UNKNOWN_SERVICE = "unknown"


@dataclass
class StreamChunk:
    """One decoded transport line.

    ``is_raw`` is set when the line was not the structured wire shape;
    the whole line is then carried as ``content``.
    """

    service: str | None = None
    content: str | None = None
    is_final: bool = False
    is_raw: bool = False


@dataclass
class StreamState:
    """Mutable state of a single exchange, owned by one accumulator."""

    accumulated_text: str = ""
    detected_service: str = UNKNOWN_SERVICE
    completed: bool = False
    chunk_count: int = 0


class ResponseAccumulator:
    """Append-only concatenation of content deltas."""

    def __init__(self) -> None:
        self._state = StreamState()

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def service(self) -> str:
        return self._state.detected_service

    def apply(self, chunk: StreamChunk) -> str | None:
        """Fold *chunk* into the state.

        Returns the appended delta, or ``None`` when the chunk carried no
        content.

        Raises:
            StreamClosedError: If the stream was already finalized.
        """
        if self._state.completed:
            raise StreamClosedError("Cannot apply a chunk to a completed stream")
        self._state.chunk_count += 1
        if chunk.service is not None:
            self._state.detected_service = chunk.service
        if not chunk.content:
            return None
        self._state.accumulated_text += chunk.content
        return chunk.content

    def current_raw_text(self) -> str:
        """Return the unformatted running text, for live rendering."""
        return self._state.accumulated_text

    def finalize(self) -> str:
        """Mark the stream completed and return the accumulated text.

        Raises:
            StreamClosedError: If called more than once.
        """
        if self._state.completed:
            raise StreamClosedError("Stream already finalized")
        self._state.completed = True
        return self._state.accumulated_text
