import json
from collections.abc import AsyncIterator

import pytest

from tidemark.decoder import ChunkDecoder
from tidemark.errors import TransportError
from tidemark.message import Message
from tidemark.runner import Runner
from tidemark.store import InMemoryMessageStore
from tidemark.transport import LineTransport


# ---------------------------------------------------------------------------
# Wire line builders (mirrors the backend's line shape)
# ---------------------------------------------------------------------------

def wire(**fields) -> str:
    """One wire line; ``is_complete`` maps to ``isComplete``."""
    if "is_complete" in fields:
        fields["isComplete"] = fields.pop("is_complete")
    return json.dumps(fields, ensure_ascii=False)


def make_reply_lines(
    *contents: str, service: str | None = None, complete: bool = True,
) -> list[str]:
    """Wire lines for a reply: optional service line, deltas, completion."""
    lines = []
    if service is not None:
        lines.append(wire(service=service))
    lines.extend(wire(content=c) for c in contents)
    if complete:
        lines.append(wire(is_complete=True))
    return lines


class LineSource:
    """Async line iterator that records how far it was read and if closed."""

    def __init__(self, lines: list[str], error: Exception | None = None):
        self._lines = list(lines)
        self._error = error
        self.read = 0
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        if self.read < len(self._lines):
            line = self._lines[self.read]
            self.read += 1
            return line
        if self._error is not None:
            raise self._error
        raise StopAsyncIteration

    async def aclose(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Mock transport
# ---------------------------------------------------------------------------

class MockTransport(LineTransport):
    """Transport that replays pre-queued replies. No network calls."""

    def __init__(self):
        self.replies: list[list[str]] = []
        self.call_log: list[list[Message]] = []
        self.fail_with: Exception | None = None
        self.sources: list[LineSource] = []

    def stream_lines(self, messages: list[Message]) -> AsyncIterator[str]:
        self.call_log.append(list(messages))
        lines = self.replies.pop(0) if self.replies else []
        source = LineSource(lines, error=self.fail_with)
        self.sources.append(source)
        return source


def dropped_connection() -> TransportError:
    return TransportError("connection reset by peer")


@pytest.fixture
def mock_transport():
    return MockTransport()


@pytest.fixture
def store():
    return InMemoryMessageStore()


@pytest.fixture
def runner():
    """Runner without pacing so tests do not sleep."""
    return Runner(decoder=ChunkDecoder(pace=0))
