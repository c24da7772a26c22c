"""Conversation persistence.

:class:`MessageStore` is the interface the exchange pipeline writes
through; :class:`InMemoryMessageStore` is the reference implementation.
Writes to one conversation are serialized; each append is a single
all-or-nothing record.
"""

from __future__ import annotations

import asyncio
import itertools
import logging

from tidemark.errors import ConversationNotFoundError
from tidemark.message import MessageRole, StoredMessage
from tidemark.session import DEFAULT_TITLE, Conversation

logger = logging.getLogger(__name__)


class MessageStore:
    """Persistence collaborator for conversations and their messages."""

    async def start_conversation(self, title: str = DEFAULT_TITLE) -> Conversation:
        raise NotImplementedError

    async def append_message(
            self,
            conversation_id: int,
            text: str,
            is_user: bool,
    ) -> int:
        """Persist one message and return its id."""
        raise NotImplementedError

    async def get_conversation(self, conversation_id: int) -> Conversation:
        raise NotImplementedError

    async def history(self, conversation_id: int) -> list[StoredMessage]:
        """Messages of a conversation in chronological order."""
        raise NotImplementedError

    async def list_conversations(self, search: str = "") -> list[Conversation]:
        """Conversations newest first, optionally filtered by title."""
        raise NotImplementedError

    async def set_title(self, conversation_id: int, title: str) -> None:
        raise NotImplementedError

    async def delete_conversation(self, conversation_id: int) -> None:
        """Delete a conversation together with its messages."""
        raise NotImplementedError


class InMemoryMessageStore(MessageStore):

    def __init__(self):
        self._conversations: dict[int, Conversation] = {}
        self._locks: dict[int, asyncio.Lock] = {}
        self._conversation_ids = itertools.count(1)
        self._message_ids = itertools.count(1)

    def _get(self, conversation_id: int) -> Conversation:
        try:
            return self._conversations[conversation_id]
        except KeyError:
            raise ConversationNotFoundError(conversation_id) from None

    async def start_conversation(self, title: str = DEFAULT_TITLE) -> Conversation:
        conversation = Conversation(
            conversation_id=next(self._conversation_ids), title=title,
        )
        self._conversations[conversation.conversation_id] = conversation
        self._locks[conversation.conversation_id] = asyncio.Lock()
        logger.info(f"Started conversation {conversation.conversation_id}")
        return conversation

    async def append_message(
            self,
            conversation_id: int,
            text: str,
            is_user: bool,
    ) -> int:
        conversation = self._get(conversation_id)
        async with self._locks[conversation_id]:
            message = StoredMessage(
                message_id=next(self._message_ids),
                conversation_id=conversation_id,
                role=MessageRole.USER if is_user else MessageRole.ASSISTANT,
                content=text,
            )
            conversation.messages.append(message)
            conversation.last_message_at = message.timestamp
        logger.debug(
            f"Stored {message.role.value} message {message.message_id} "
            f"in conversation {conversation_id}"
        )
        return message.message_id

    async def get_conversation(self, conversation_id: int) -> Conversation:
        return self._get(conversation_id)

    async def history(self, conversation_id: int) -> list[StoredMessage]:
        return list(self._get(conversation_id).messages)

    async def list_conversations(self, search: str = "") -> list[Conversation]:
        conversations = [
            c for c in self._conversations.values()
            if search.strip().lower() in c.title.lower()
        ]
        return sorted(
            conversations,
            key=lambda c: (c.started_at, c.conversation_id),
            reverse=True,
        )

    async def set_title(self, conversation_id: int, title: str) -> None:
        conversation = self._get(conversation_id)
        async with self._locks[conversation_id]:
            conversation.title = title

    async def delete_conversation(self, conversation_id: int) -> None:
        self._get(conversation_id)
        async with self._locks[conversation_id]:
            del self._conversations[conversation_id]
        del self._locks[conversation_id]
        logger.info(f"Deleted conversation {conversation_id}")
