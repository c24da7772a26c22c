import asyncio
import inspect
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass

from tidemark import instrumentation as inst
from tidemark.decoder import ChunkDecoder
from tidemark.errors import StreamTimeoutError
from tidemark.events import (
    ContentDeltaEvent,
    ExchangeCompleteEvent,
    ServiceDetectedEvent,
    StreamEvent,
)
from tidemark.formatting import DEFAULT_FORMATTER, ProviderFormatter
from tidemark.repair import DEFAULT_ENGINE, MarkdownRepairEngine
from tidemark.settings import Settings
from tidemark.store import MessageStore
from tidemark.streaming import ResponseAccumulator

logger = logging.getLogger(__name__)

LiveTextCallback = Callable[[str], Awaitable[None] | None]


@dataclass
class ExchangeResult:
    """The result of a single completed exchange."""

    text: str
    raw_text: str
    service: str
    chunk_count: int
    message_id: int | None = None


class Runner:
    """Drives one streamed exchange from transport lines to final text.

    Content deltas are accumulated raw and reported live; only once the
    stream completes is the whole text repaired, formatted for the
    detected provider, and persisted.

    ``run()`` drains ``iter()``.  ``iter()`` is the streaming entry point.
    Breaking out of ``iter()`` (or cancelling ``run()``) aborts the
    exchange: nothing is persisted and no completion event is emitted.

    Args:
        decoder: Line decoder, carrying the pacing delay.
        engine: Markdown repair engine.
        formatter: Provider formatter.
        timeout: Bound in seconds for the whole exchange, or ``None``.
    """

    def __init__(
        self,
        decoder: ChunkDecoder | None = None,
        engine: MarkdownRepairEngine | None = None,
        formatter: ProviderFormatter | None = None,
        timeout: float | None = 300.0,
    ):
        self.decoder = decoder or ChunkDecoder()
        self.engine = engine or DEFAULT_ENGINE
        self.formatter = formatter or DEFAULT_FORMATTER
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "Runner":
        return cls(decoder=ChunkDecoder(pace=settings.pace), timeout=settings.timeout)

    def finish(self, raw_text: str, service: str) -> str:
        """Repair then format a complete response."""
        return self.formatter.format(self.engine.repair(raw_text), service)

    async def run(
        self, lines: AsyncIterator[str], *,
        store: MessageStore | None = None,
        conversation_id: int | None = None,
        on_live_text: LiveTextCallback | None = None,
    ) -> ExchangeResult:
        """Run the exchange to completion under the whole-exchange timeout."""
        try:
            return await asyncio.wait_for(
                self._drain(lines, store, conversation_id, on_live_text),
                self.timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Exchange exceeded {self.timeout}s timeout")
            raise StreamTimeoutError(
                f"Exchange exceeded {self.timeout}s timeout"
            ) from e

    async def _drain(self, lines, store, conversation_id, on_live_text) -> ExchangeResult:
        result: ExchangeResult | None = None
        events = self.iter(
            lines, store=store, conversation_id=conversation_id,
            on_live_text=on_live_text,
        )
        async for event in events:
            if isinstance(event, ExchangeCompleteEvent):
                result = event.result
        if result is None:
            raise RuntimeError("iter() ended without emitting ExchangeCompleteEvent")
        return result

    async def iter(
        self, lines: AsyncIterator[str], *,
        store: MessageStore | None = None,
        conversation_id: int | None = None,
        on_live_text: LiveTextCallback | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Consume *lines*, yielding events as the response arrives.

        The timeout is checked between chunks; ``run()`` additionally
        interrupts a read that blocks past it.
        """
        loop = asyncio.get_running_loop()
        deadline = None if self.timeout is None else loop.time() + self.timeout
        acc = ResponseAccumulator()
        chunks = self.decoder.iter_chunks(lines)

        async with inst.exchange_span(conversation_id) as span:
            try:
                async for chunk in chunks:
                    previous_service = acc.service
                    delta = acc.apply(chunk)
                    if acc.service != previous_service:
                        logger.debug(f"Service detected: {acc.service}")
                        yield ServiceDetectedEvent(service=acc.service)
                    if delta is not None:
                        raw_text = acc.current_raw_text()
                        await self._notify(on_live_text, raw_text)
                        yield ContentDeltaEvent(
                            content=delta,
                            raw_text=raw_text,
                            preview=self.finish(delta, acc.service),
                        )
                    if deadline is not None and loop.time() > deadline:
                        raise StreamTimeoutError(
                            f"Exchange exceeded {self.timeout}s timeout"
                        )
            finally:
                # Stop reading: lines buffered after completion are dropped.
                await chunks.aclose()
                aclose = getattr(lines, "aclose", None)
                if aclose is not None:
                    await aclose()

            raw_text = acc.finalize()
            inst.record_stream_stats(span, acc.state)
            text = self.finish(raw_text, acc.service)
            logger.info(
                f"Exchange complete: service={acc.service}, "
                f"chunks={acc.state.chunk_count}, chars={len(text)}"
            )

            message_id = None
            if store is not None and conversation_id is not None:
                message_id = await store.append_message(
                    conversation_id, text, False,
                )
            yield ExchangeCompleteEvent(result=ExchangeResult(
                text=text,
                raw_text=raw_text,
                service=acc.service,
                chunk_count=acc.state.chunk_count,
                message_id=message_id,
            ))

    @staticmethod
    async def _notify(callback: LiveTextCallback | None, raw_text: str) -> None:
        if callback is None:
            return
        outcome = callback(raw_text)
        if inspect.isawaitable(outcome):
            await outcome
