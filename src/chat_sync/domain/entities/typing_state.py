from __future__ import annotations

from dataclasses import dataclass

from chat_sync.domain.value_objects.enums import TypingPhase
from chat_sync.domain.value_objects.ids import UserId


@dataclass(frozen=True, slots=True)
class TypingState:
    user_id: UserId
    last_signal_at: float
    is_typing: bool
    phase: TypingPhase = TypingPhase.IDLE
