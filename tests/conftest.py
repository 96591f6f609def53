"""Shared test fixtures."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest

from chat_sync.application.dto.page import MessagePage, Pagination
from chat_sync.application.dto.principal import Principal
from chat_sync.application.exceptions import AppError
from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.entities.message import Confirmed, Message
from chat_sync.domain.entities.order import OrderRef
from chat_sync.domain.entities.participant import Participant
from chat_sync.domain.value_objects.enums import (
    ConversationStatus,
    FeedbackType,
    MessageType,
    OrderAction,
    OrderStatus,
)
from chat_sync.domain.value_objects.ids import (
    ConversationId,
    MessageId,
    OrderId,
    UserId,
)

CONVERSATION_ID = ConversationId(1)
ORDER_ID = OrderId(77)
CLIENT_ID = UserId(42)
SPECIALIST_ID = UserId(7)
T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def client_principal() -> Principal:
    return Principal(user_id=CLIENT_ID, token="client-token", roles=[])


@pytest.fixture
def specialist_principal() -> Principal:
    return Principal(user_id=SPECIALIST_ID, token="specialist-token", roles=[])


def make_message(
    message_id: int,
    *,
    sender_id: int = SPECIALIST_ID,
    content: str | None = None,
    created_at: datetime | None = None,
    conversation_id: int = CONVERSATION_ID,
) -> Message:
    return Message(
        ref=Confirmed(MessageId(message_id)),
        conversation_id=ConversationId(conversation_id),
        sender_id=UserId(sender_id),
        content=content if content is not None else f"message {message_id}",
        message_type=MessageType.TEXT,
        created_at=created_at or T0 + timedelta(seconds=message_id),
    )


def message_payload(message: Message) -> dict[str, Any]:
    """Push/REST JSON for ``message`` as the backend sends it."""
    return {
        "id": message.id,
        "conversationId": message.conversation_id,
        "senderId": message.sender_id,
        "content": message.content,
        "messageType": message.message_type.value,
        "createdAt": message.created_at.isoformat(),
    }


def make_conversation(
    *,
    status: ConversationStatus = ConversationStatus.OPEN,
    order_status: str | None = OrderStatus.OPEN,
    client_id: int = CLIENT_ID,
    specialist_active: bool = True,
    updated_at: datetime = T0,
    message_count: int | None = None,
) -> Conversation:
    order = None
    if order_status is not None:
        order = OrderRef(
            id=ORDER_ID,
            title="Fix the kitchen sink",
            status=order_status,
            client_id=UserId(client_id),
        )
    return Conversation(
        id=CONVERSATION_ID,
        status=status,
        participants=(
            Participant(user_id=CLIENT_ID, name="Alice"),
            Participant(user_id=SPECIALIST_ID, name="Bob", is_active=specialist_active),
        ),
        order=order,
        updated_at=updated_at,
        message_count=message_count,
    )


class FakeTimer:
    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Manual clock: timers only fire inside ``advance``."""

    def __init__(self) -> None:
        self.now = 0.0
        self._timers: list[FakeTimer] = []

    def monotonic(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(self.now + delay, callback)
        self._timers.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self._timers if not t.cancelled]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [t for t in self._timers if not t.cancelled and t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self._timers.remove(timer)
            self.now = timer.due
            timer.callback()
        self.now = target


class FakeClock:
    def __init__(self, start: datetime = T0 + timedelta(hours=1)) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current


@dataclass
class FakeChatApi:
    """In-memory backend. ``messages`` is the full history, oldest first."""

    conversation: Conversation | None = None
    messages: list[Message] = field(default_factory=list)
    reviews: list[dict[str, Any]] = field(default_factory=list)
    errors: dict[str, AppError] = field(default_factory=dict)
    calls: list[tuple[Any, ...]] = field(default_factory=list)
    next_id: int = 900
    clock: FakeClock = field(default_factory=FakeClock)
    send_gate: asyncio.Event | None = None
    page_gate: asyncio.Event | None = None
    after_order_action: Callable[[OrderAction], None] | None = None

    def _check(self, name: str) -> None:
        error = self.errors.get(name)
        if error is not None:
            raise error

    async def get_conversation(self, conversation_id: ConversationId) -> Conversation:
        self.calls.append(("get_conversation", conversation_id))
        self._check("get_conversation")
        assert self.conversation is not None
        return self.conversation

    async def get_messages(
        self, conversation_id: ConversationId, *, page: int, limit: int,
    ) -> MessagePage:
        self.calls.append(("get_messages", conversation_id, page, limit))
        if self.page_gate is not None:
            await self.page_gate.wait()
        self._check("get_messages")
        start = (page - 1) * limit
        return MessagePage(
            messages=tuple(self.messages[start:start + limit]),
            pagination=Pagination(page=page, limit=limit, total=len(self.messages)),
        )

    async def mark_as_read(self, conversation_id: ConversationId) -> None:
        self.calls.append(("mark_as_read", conversation_id))
        self._check("mark_as_read")

    async def send_message(
        self,
        conversation_id: ConversationId,
        content: str,
        message_type: MessageType = MessageType.TEXT,
    ) -> Message:
        self.calls.append(("send_message", conversation_id, content))
        if self.send_gate is not None:
            await self.send_gate.wait()
        self._check("send_message")
        message = Message(
            ref=Confirmed(MessageId(self.next_id)),
            conversation_id=conversation_id,
            sender_id=CLIENT_ID,
            content=content,
            message_type=message_type,
            created_at=self.clock.now(),
        )
        self.next_id += 1
        self.messages.append(message)
        return message

    async def send_typing_status(self, conversation_id: ConversationId, is_typing: bool) -> None:
        self.calls.append(("send_typing_status", conversation_id, is_typing))
        self._check("send_typing_status")

    async def order_action(self, order_id: OrderId, action: OrderAction) -> dict[str, Any]:
        self.calls.append(("order_action", order_id, action))
        self._check("order_action")
        if self.after_order_action is not None:
            self.after_order_action(action)
        return {"success": True}

    async def get_reviews_by_order(self, order_id: OrderId) -> list[dict[str, Any]]:
        self.calls.append(("get_reviews_by_order", order_id))
        self._check("get_reviews_by_order")
        return self.reviews

    async def submit_feedback(
        self,
        order_id: OrderId,
        *,
        specialist_id: UserId | None,
        rating: int,
        comment: str,
        feedback_type: FeedbackType,
    ) -> None:
        self.calls.append(("submit_feedback", order_id, specialist_id, rating, comment, feedback_type))
        self._check("submit_feedback")

    def called(self, name: str) -> list[tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == name]


class FakeSubscription:
    def __init__(self, name: str) -> None:
        self.name = name
        self.handlers: dict[str, list[Callable[[dict[str, Any]], None]]] = {}
        self.triggered: list[tuple[str, dict[str, Any]]] = []
        self.trigger_ok = True

    def bind(self, event: str, handler: Callable[[dict[str, Any]], None]) -> None:
        self.handlers.setdefault(event, []).append(handler)

    def unbind(self, event: str, handler: Callable[[dict[str, Any]], None]) -> None:
        if handler in self.handlers.get(event, []):
            self.handlers[event].remove(handler)

    def unbind_all(self) -> None:
        self.handlers.clear()

    def trigger(self, event: str, data: dict[str, Any]) -> bool:
        if not self.trigger_ok:
            return False
        self.triggered.append((event, data))
        return True

    def emit(self, event: str, data: dict[str, Any]) -> None:
        for handler in list(self.handlers.get(event, [])):
            handler(data)

    def bound_count(self) -> int:
        return sum(len(h) for h in self.handlers.values())


@dataclass
class FakeChannelProvider:
    """Push transport double. ``failures`` counts subscribe attempts to refuse."""

    subscriptions: dict[str, FakeSubscription] = field(default_factory=dict)
    failures: dict[str, int] = field(default_factory=dict)
    subscribe_calls: list[str] = field(default_factory=list)
    unsubscribed: list[str] = field(default_factory=list)

    def subscribe(self, channel_name: str) -> FakeSubscription | None:
        self.subscribe_calls.append(channel_name)
        remaining = self.failures.get(channel_name, 0)
        if remaining:
            self.failures[channel_name] = remaining - 1
            return None
        return self.subscriptions.setdefault(channel_name, FakeSubscription(channel_name))

    def unsubscribe(self, channel_name: str) -> None:
        self.unsubscribed.append(channel_name)

    def emit(self, channel_name: str, event: str, data: dict[str, Any]) -> None:
        subscription = self.subscriptions.get(channel_name)
        if subscription is not None:
            subscription.emit(event, data)
