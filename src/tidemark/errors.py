"""Exceptions raised by tidemark.

Malformed chunks and failing cosmetic transforms are not errors: the
decoder falls back to literal text and transforms fail open.  Everything
here aborts the operation that raised it.
"""


class TidemarkError(Exception):
    """Base class for all tidemark errors."""


class TransportError(TidemarkError):
    """The line transport failed: read error, dropped connection, bad status.

    The exchange is aborted and nothing is persisted.
    """


class StreamTimeoutError(TransportError):
    """The whole exchange exceeded its timeout."""


class StreamClosedError(TidemarkError):
    """A chunk was applied, or the stream finalized, after completion."""


class ExchangeInProgressError(TidemarkError):
    """A conversation already has an outstanding exchange."""

    def __init__(self, conversation_id: int):
        super().__init__(
            f"Conversation {conversation_id} already has an exchange in progress"
        )
        self.conversation_id = conversation_id


class ConversationNotFoundError(TidemarkError, KeyError):
    """No conversation with the requested id exists in the store."""

    def __init__(self, conversation_id: int):
        super().__init__(f"Conversation {conversation_id} not found")
        self.conversation_id = conversation_id

    def __str__(self) -> str:
        return self.args[0]
