from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

from chat_sync.domain.entities.order import OrderRef
from chat_sync.domain.entities.participant import Participant
from chat_sync.domain.value_objects.enums import ConversationStatus
from chat_sync.domain.value_objects.ids import ConversationId, UserId


@dataclass(frozen=True, slots=True)
class Conversation:
    id: ConversationId
    status: ConversationStatus
    participants: tuple[Participant, ...]
    order: OrderRef | None
    updated_at: datetime
    message_count: int | None = None

    def participant(self, user_id: UserId) -> Participant | None:
        for p in self.participants:
            if p.user_id == user_id:
                return p
        return None

    def with_participant_inactive(self, user_id: UserId) -> Conversation:
        participants = tuple(
            replace(p, is_active=False) if p.user_id == user_id else p
            for p in self.participants
        )
        return replace(self, participants=participants)
