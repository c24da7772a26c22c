from datetime import datetime, timezone

from pydantic import BaseModel, Field

from tidemark.message import StoredMessage

DEFAULT_TITLE = "Nueva conversación"
MAX_TITLE_LENGTH = 50


def title_from_message(content: str) -> str:
    """Derive a conversation title from its first user message."""
    content = content.strip()
    if len(content) > MAX_TITLE_LENGTH:
        return content[:MAX_TITLE_LENGTH - 3] + "..."
    return content


class Conversation(BaseModel):
    conversation_id: int
    title: str = DEFAULT_TITLE
    started_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    last_message_at: datetime | None = None
    messages: list[StoredMessage] = Field(default_factory=list)

    @property
    def message_count(self) -> int:
        return len(self.messages)

    def first_user_message(self) -> StoredMessage | None:
        return next((m for m in self.messages if m.is_user), None)
