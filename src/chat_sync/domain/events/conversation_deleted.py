from __future__ import annotations

from dataclasses import dataclass

from chat_sync.domain.value_objects.ids import ConversationId, UserId


@dataclass(frozen=True, slots=True)
class ConversationDeleted:
    conversation_id: ConversationId
    deleted_by: UserId | None = None
