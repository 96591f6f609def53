from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from chat_sync.domain.value_objects.enums import MessageType
from chat_sync.domain.value_objects.ids import ConversationId, MessageId, UserId


@dataclass(frozen=True, slots=True)
class LocalPending:
    """A message shown before the backend acknowledged it."""

    temp_key: UUID


@dataclass(frozen=True, slots=True)
class Confirmed:
    id: MessageId


MessageRef = LocalPending | Confirmed


@dataclass(frozen=True, slots=True)
class Message:
    ref: MessageRef
    conversation_id: ConversationId
    sender_id: UserId
    content: str
    message_type: MessageType
    created_at: datetime

    @property
    def id(self) -> MessageId | None:
        if isinstance(self.ref, Confirmed):
            return self.ref.id
        return None

    @property
    def is_pending(self) -> bool:
        return isinstance(self.ref, LocalPending)

    @property
    def temp_key(self) -> UUID | None:
        if isinstance(self.ref, LocalPending):
            return self.ref.temp_key
        return None

    @property
    def sort_key(self) -> tuple[datetime, bool, int]:
        # pending entries sort after confirmed ones sharing a timestamp
        return (self.created_at, self.id is None, self.id or 0)
