from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from chat_sync.application.dto.view import ActionResult, ConversationView
from chat_sync.domain.entities.message import Message


class SendMessageRequest(BaseModel):
    content: str


class TypingRequest(BaseModel):
    text: str = ""


class FeedbackRequest(BaseModel):
    rating: int
    comment: str = Field(default="", max_length=2000)


class MessageResponse(BaseModel):
    id: int | None
    temp_key: UUID | None
    conversation_id: int
    sender_id: int
    content: str
    message_type: str
    created_at: datetime
    pending: bool

    @classmethod
    def from_entity(cls, message: Message) -> MessageResponse:
        return cls(
            id=message.id,
            temp_key=message.temp_key,
            conversation_id=message.conversation_id,
            sender_id=message.sender_id,
            content=message.content,
            message_type=message.message_type.value,
            created_at=message.created_at,
            pending=message.is_pending,
        )


class ViewResponse(BaseModel):
    conversation_id: int
    messages: list[MessageResponse]
    status: str | None
    order_status: str | None
    can_send: bool
    typing_label: str
    available_actions: list[str]
    feedback_prompt: str | None
    error: str | None
    loading: bool
    degraded: bool
    has_older: bool

    @classmethod
    def from_view(cls, view: ConversationView) -> ViewResponse:
        return cls(
            conversation_id=view.conversation_id,
            messages=[MessageResponse.from_entity(m) for m in view.messages],
            status=view.status.value if view.status else None,
            order_status=view.order_status,
            can_send=view.can_send,
            typing_label=view.typing_label,
            available_actions=[a.value for a in view.available_actions],
            feedback_prompt=view.feedback_prompt.value if view.feedback_prompt else None,
            error=view.error,
            loading=view.loading,
            degraded=view.degraded,
            has_older=view.has_older,
        )


class ActionResultResponse(BaseModel):
    ok: bool
    error: str | None = None
    view: ViewResponse

    @classmethod
    def build(cls, result: ActionResult, view: ConversationView) -> ActionResultResponse:
        return cls(ok=result.ok, error=result.error, view=ViewResponse.from_view(view))
