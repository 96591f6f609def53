from __future__ import annotations

from dataclasses import dataclass

from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.enums import (
    ConversationStatus,
    FeedbackType,
    OrderAction,
)
from chat_sync.domain.value_objects.ids import ConversationId


@dataclass(frozen=True, slots=True)
class ConversationView:
    """Read-only snapshot handed to the UI after every state change."""

    conversation_id: ConversationId
    messages: tuple[Message, ...] = ()
    status: ConversationStatus | None = None
    order_status: str | None = None
    can_send: bool = False
    typing_label: str = ""
    available_actions: tuple[OrderAction, ...] = ()
    feedback_prompt: FeedbackType | None = None
    error: str | None = None
    loading: bool = False
    degraded: bool = False
    has_older: bool = False


@dataclass(frozen=True, slots=True)
class ActionResult:
    ok: bool
    error: str | None = None

    @classmethod
    def success(cls) -> ActionResult:
        return cls(ok=True)

    @classmethod
    def failure(cls, error: str) -> ActionResult:
        return cls(ok=False, error=error)
