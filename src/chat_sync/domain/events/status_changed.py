from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from chat_sync.domain.value_objects.enums import ConversationStatus
from chat_sync.domain.value_objects.ids import ConversationId


@dataclass(frozen=True, slots=True)
class StatusChanged:
    conversation_id: ConversationId
    status: ConversationStatus
    updated_at: datetime | None = None
