from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_serializer


class MessageRole(Enum):
    ASSISTANT = "assistant"
    USER = "user"


class Message(BaseModel):
    role: MessageRole
    content: str

    @field_serializer('role')
    def serialize_role(self, role: MessageRole, _info) -> str:
        return role.value


class StoredMessage(Message):
    """A message persisted in a conversation."""

    message_id: int
    conversation_id: int
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def is_user(self) -> bool:
        return self.role is MessageRole.USER

    def to_request(self) -> Message:
        """Strip storage fields, leaving what the backend expects."""
        return Message(role=self.role, content=self.content)
