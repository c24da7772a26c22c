import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from tidemark.errors import ExchangeInProgressError
from tidemark.events import ExchangeCompleteEvent, StreamEvent
from tidemark.message import Message, MessageRole
from tidemark.runner import ExchangeResult, LiveTextCallback, Runner
from tidemark.session import DEFAULT_TITLE, Conversation, title_from_message
from tidemark.settings import Settings
from tidemark.store import InMemoryMessageStore, MessageStore
from tidemark.transport import HttpLineTransport, LineTransport

logger = logging.getLogger(__name__)


class ChatClient:
    """Sends user messages and streams the assistant's replies.

    Each conversation has at most one exchange in flight; exchanges on
    different conversations are independent.  The user message is stored
    before the request goes out, the assistant reply only once its
    stream has completed.

    Args:
        transport: Where response lines come from.
        store: Conversation persistence, or a fresh in-memory store.
        runner: Runner instance, or a default Runner.
    """

    def __init__(
        self,
        transport: LineTransport,
        store: MessageStore | None = None,
        runner: Runner | None = None,
    ):
        self.transport = transport
        self.store = store or InMemoryMessageStore()
        self.runner = runner or Runner()
        self._active: set[int] = set()

    @classmethod
    def from_settings(
        cls, settings: Settings | None = None, store: MessageStore | None = None,
    ) -> "ChatClient":
        settings = settings or Settings()
        return cls(
            transport=HttpLineTransport.from_settings(settings),
            store=store,
            runner=Runner.from_settings(settings),
        )

    async def start_conversation(self) -> Conversation:
        return await self.store.start_conversation()

    async def send(
        self,
        conversation_id: int,
        text: str,
        on_live_text: LiveTextCallback | None = None,
    ) -> ExchangeResult:
        """Send *text* and return the completed, persisted reply."""
        self._acquire(conversation_id)
        try:
            messages = await self._prepare(conversation_id, text)
            result = await self.runner.run(
                self.transport.stream_lines(messages),
                store=self.store,
                conversation_id=conversation_id,
                on_live_text=on_live_text,
            )
            await self._update_title(conversation_id)
            return result
        finally:
            self._active.discard(conversation_id)

    @asynccontextmanager
    async def stream(
        self,
        conversation_id: int,
        text: str,
        on_live_text: LiveTextCallback | None = None,
    ) -> AsyncIterator[AsyncIterator[StreamEvent]]:
        """Send *text*; the context yields the exchange's events as they happen.

        Leaving the ``async with`` block closes the exchange and frees the
        conversation, also after a ``break``::

            async with client.stream(cid, "hola") as events:
                async for event in events:
                    ...
        """
        self._acquire(conversation_id)
        events = None
        try:
            messages = await self._prepare(conversation_id, text)
            events = self._events(conversation_id, messages, on_live_text)
            yield events
        finally:
            if events is not None:
                await events.aclose()
            self._active.discard(conversation_id)

    async def _events(
        self,
        conversation_id: int,
        messages: list[Message],
        on_live_text: LiveTextCallback | None,
    ) -> AsyncIterator[StreamEvent]:
        events = self.runner.iter(
            self.transport.stream_lines(messages),
            store=self.store,
            conversation_id=conversation_id,
            on_live_text=on_live_text,
        )
        try:
            async for event in events:
                if isinstance(event, ExchangeCompleteEvent):
                    await self._update_title(conversation_id)
                yield event
        finally:
            await events.aclose()

    def _acquire(self, conversation_id: int) -> None:
        if conversation_id in self._active:
            raise ExchangeInProgressError(conversation_id)
        self._active.add(conversation_id)

    async def _prepare(self, conversation_id: int, text: str) -> list[Message]:
        """Store the user message; return the request transcript."""
        text = text.strip()
        if not text:
            raise ValueError("Message text must not be empty")
        history = await self.store.history(conversation_id)
        await self.store.append_message(conversation_id, text, True)
        logger.info(
            f"Sending message to conversation {conversation_id} "
            f"with {len(history)} prior messages"
        )
        return [
            *[m.to_request() for m in history],
            Message(role=MessageRole.USER, content=text),
        ]

    async def _update_title(self, conversation_id: int) -> None:
        conversation = await self.store.get_conversation(conversation_id)
        if conversation.title != DEFAULT_TITLE:
            return
        first = conversation.first_user_message()
        if first is not None:
            await self.store.set_title(
                conversation_id, title_from_message(first.content),
            )
