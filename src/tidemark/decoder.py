"""Line decoder for the backend wire format.

Each transport line is either a JSON object of the shape::

    {"service": "groq", "content": "Hi", "isComplete": false}

(all fields optional) or literal response text.  Lines that do not
validate as :class:`WireChunk` are never an error: the whole line is
treated as a raw content delta.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from pydantic import BaseModel, Field, ValidationError

from tidemark.streaming import StreamChunk

logger = logging.getLogger(__name__)


class WireChunk(BaseModel):
    """Structured shape of one wire line."""

    service: str | None = None
    content: str | None = None
    is_complete: bool | None = Field(default=None, alias="isComplete")


def decode_line(line: str) -> StreamChunk | None:
    """Decode one transport line.

    Returns ``None`` for blank lines.  A line that is not a JSON object
    of the wire shape becomes a raw chunk carrying the line verbatim.
    """
    if not line.strip():
        return None
    try:
        wire = WireChunk.model_validate_json(line)
    except ValidationError:
        logger.debug(f"Non-structured line, treating as text: {line[:80]!r}")
        return StreamChunk(content=line, is_raw=True)
    return StreamChunk(
        service=wire.service,
        content=wire.content,
        is_final=bool(wire.is_complete),
    )


class ChunkDecoder:
    """Turns an async line source into an ordered chunk stream.

    Args:
        pace: Seconds to sleep after each processed line, smoothing live
            updates.  ``0`` disables pacing.  Never affects results.
    """

    def __init__(self, pace: float = 0.01):
        self.pace = pace

    async def iter_chunks(
        self, lines: AsyncIterator[str],
    ) -> AsyncIterator[StreamChunk]:
        """Yield decoded chunks, stopping after the first final chunk.

        Lines buffered after the final chunk are never read.  Running out
        of lines is an implicit completion; no synthetic final chunk is
        produced for it.
        """
        async for line in lines:
            chunk = decode_line(line)
            if chunk is None:
                continue
            yield chunk
            if chunk.is_final:
                logger.debug("Completion signal received")
                return
            if self.pace > 0:
                await asyncio.sleep(self.pace)
