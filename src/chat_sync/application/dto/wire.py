"""Backend JSON payloads (REST responses and push events)."""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from chat_sync.application.dto.page import MessagePage, Pagination
from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.entities.message import Confirmed, Message
from chat_sync.domain.entities.order import OrderRef
from chat_sync.domain.entities.participant import Participant
from chat_sync.domain.events.conversation_deleted import ConversationDeleted
from chat_sync.domain.events.status_changed import StatusChanged
from chat_sync.domain.events.typing_signal import TypingSignal
from chat_sync.domain.value_objects.enums import ConversationStatus, MessageType
from chat_sync.domain.value_objects.ids import (
    ConversationId,
    MessageId,
    OrderId,
    UserId,
)

logger = logging.getLogger(__name__)

_KNOWN_STATUSES = frozenset(s.value for s in ConversationStatus)


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class MessagePayload(WireModel):
    id: int
    conversation_id: int
    sender_id: int
    content: str = ""
    message_type: str = MessageType.TEXT
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _tz(cls, v: datetime) -> datetime:
        return _aware(v)

    def to_entity(self) -> Message:
        kind = MessageType.SYSTEM if self.message_type == MessageType.SYSTEM else MessageType.TEXT
        return Message(
            ref=Confirmed(MessageId(self.id)),
            conversation_id=ConversationId(self.conversation_id),
            sender_id=UserId(self.sender_id),
            content=self.content,
            message_type=kind,
            created_at=self.created_at,
        )


class UserPayload(WireModel):
    id: int
    name: str = ""


class ParticipantPayload(WireModel):
    user_id: int
    is_active: bool = True
    user: UserPayload | None = Field(default=None, alias="User")

    def to_entity(self) -> Participant:
        return Participant(
            user_id=UserId(self.user_id),
            name=self.user.name if self.user else "",
            is_active=self.is_active,
        )


class OrderPayload(WireModel):
    id: int
    title: str = ""
    status: str
    client_id: int

    def to_entity(self) -> OrderRef:
        return OrderRef(
            id=OrderId(self.id),
            title=self.title,
            status=self.status,
            client_id=UserId(self.client_id),
        )


class CountPayload(WireModel):
    messages: int = Field(default=0, alias="Messages")


class ConversationPayload(WireModel):
    id: int
    status: ConversationStatus
    updated_at: datetime
    participants: list[ParticipantPayload] = Field(default_factory=list, alias="Participants")
    order: OrderPayload | None = Field(default=None, alias="Order")
    count: CountPayload | None = Field(default=None, alias="_count")

    @field_validator("status", mode="before")
    @classmethod
    def _known_status(cls, v: object) -> object:
        # unknown values rank lowest so they never regress a loaded status
        if isinstance(v, str) and v not in _KNOWN_STATUSES:
            logger.warning("Unknown conversation status %r, treating as open", v)
            return ConversationStatus.OPEN
        return v

    @field_validator("updated_at")
    @classmethod
    def _tz(cls, v: datetime) -> datetime:
        return _aware(v)

    def to_entity(self) -> Conversation:
        return Conversation(
            id=ConversationId(self.id),
            status=self.status,
            participants=tuple(p.to_entity() for p in self.participants),
            order=self.order.to_entity() if self.order else None,
            updated_at=self.updated_at,
            message_count=self.count.messages if self.count else None,
        )


class PaginationPayload(WireModel):
    page: int = 1
    limit: int
    total: int


class MessagesPagePayload(WireModel):
    messages: list[MessagePayload] = Field(default_factory=list)
    pagination: PaginationPayload

    def to_page(self) -> MessagePage:
        return MessagePage(
            messages=tuple(m.to_entity() for m in self.messages),
            pagination=Pagination(
                page=self.pagination.page,
                limit=self.pagination.limit,
                total=self.pagination.total,
            ),
        )


class StatusChangedPayload(WireModel):
    conversation_id: int
    status: ConversationStatus
    updated_at: datetime | None = None

    @field_validator("updated_at")
    @classmethod
    def _tz(cls, v: datetime | None) -> datetime | None:
        return _aware(v) if v is not None else None

    def to_event(self) -> StatusChanged:
        return StatusChanged(
            conversation_id=ConversationId(self.conversation_id),
            status=self.status,
            updated_at=self.updated_at,
        )


class ConversationDeletedPayload(WireModel):
    conversation_id: int
    deleted_by: int | None = None

    def to_event(self) -> ConversationDeleted:
        return ConversationDeleted(
            conversation_id=ConversationId(self.conversation_id),
            deleted_by=UserId(self.deleted_by) if self.deleted_by is not None else None,
        )


class TypingPayload(WireModel):
    user_id: int
    is_typing: bool

    def to_event(self) -> TypingSignal:
        return TypingSignal(user_id=UserId(self.user_id), is_typing=self.is_typing)
