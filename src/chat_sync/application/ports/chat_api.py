from __future__ import annotations

from typing import Any, Protocol

from chat_sync.application.dto.page import MessagePage
from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.enums import FeedbackType, MessageType, OrderAction
from chat_sync.domain.value_objects.ids import ConversationId, OrderId, UserId


class ChatApi(Protocol):
    """Backend REST surface used by the sync engine.

    Every method raises TransportError on network/HTTP failure. Order actions
    are idempotent on the backend side.
    """

    async def get_conversation(self, conversation_id: ConversationId) -> Conversation: ...

    async def get_messages(
        self, conversation_id: ConversationId, *, page: int, limit: int,
    ) -> MessagePage: ...

    async def mark_as_read(self, conversation_id: ConversationId) -> None: ...

    async def send_message(
        self,
        conversation_id: ConversationId,
        content: str,
        message_type: MessageType = MessageType.TEXT,
    ) -> Message: ...

    async def send_typing_status(self, conversation_id: ConversationId, is_typing: bool) -> None: ...

    async def order_action(self, order_id: OrderId, action: OrderAction) -> dict[str, Any]: ...

    async def get_reviews_by_order(self, order_id: OrderId) -> list[dict[str, Any]]: ...

    async def submit_feedback(
        self,
        order_id: OrderId,
        *,
        specialist_id: UserId | None,
        rating: int,
        comment: str,
        feedback_type: FeedbackType,
    ) -> None: ...
