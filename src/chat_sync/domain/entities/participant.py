from __future__ import annotations

from dataclasses import dataclass

from chat_sync.domain.value_objects.ids import UserId


@dataclass(frozen=True, slots=True)
class Participant:
    user_id: UserId
    name: str
    is_active: bool = True
