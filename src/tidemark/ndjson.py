"""Line-delimited JSON encoding of the backend wire format.

The inverse of :mod:`tidemark.decoder`: lets a process relay an exchange
to another client in the same shape the backends speak.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator

from tidemark.events import (
    ContentDeltaEvent,
    ServiceDetectedEvent,
    StreamEvent,
)


def encode_line(
    service: str | None = None,
    content: str | None = None,
    is_complete: bool | None = None,
) -> str:
    """Encode one wire line, omitting absent fields."""
    payload = {}
    if service is not None:
        payload["service"] = service
    if content is not None:
        payload["content"] = content
    if is_complete is not None:
        payload["isComplete"] = is_complete
    return json.dumps(payload, ensure_ascii=False)


async def ndjson_generator(
    event_stream: AsyncIterator[StreamEvent],
) -> AsyncIterator[str]:
    """Convert a StreamEvent async iterator into newline-terminated wire lines.

    The completion line is only written when the event stream ends
    normally.
    """
    async for event in event_stream:
        if isinstance(event, ServiceDetectedEvent):
            yield encode_line(service=event.service) + "\n"
        elif isinstance(event, ContentDeltaEvent):
            yield encode_line(content=event.content) + "\n"
    yield encode_line(is_complete=True) + "\n"
