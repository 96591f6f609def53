"""Post-engagement review prompt, shown at most once per conversation and viewer."""
from __future__ import annotations

import logging

from chat_sync.application.exceptions import AppError, ConflictError, ValidationError
from chat_sync.application.ports.chat_api import ChatApi
from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.value_objects.enums import ConversationStatus, FeedbackType
from chat_sync.domain.value_objects.ids import ConversationId, UserId

logger = logging.getLogger(__name__)


def feedback_type_for(status: ConversationStatus) -> FeedbackType:
    if status == ConversationStatus.COMPLETED:
        return FeedbackType.COMPLETED
    return FeedbackType.CANCELED


class FeedbackLedger:
    """Session-scoped record of prompts already consumed.

    Once a key is consumed (submitted, dismissed or found already reviewed)
    it is never re-armed for the rest of the session.
    """

    def __init__(self) -> None:
        self._consumed: set[tuple[ConversationId, UserId]] = set()

    def is_consumed(self, conversation_id: ConversationId, viewer_id: UserId) -> bool:
        return (conversation_id, viewer_id) in self._consumed

    def consume(self, conversation_id: ConversationId, viewer_id: UserId) -> None:
        self._consumed.add((conversation_id, viewer_id))


class FeedbackPrompt:
    def __init__(self, api: ChatApi, ledger: FeedbackLedger, viewer_id: UserId) -> None:
        self._api = api
        self._ledger = ledger
        self._viewer_id = viewer_id
        self.pending: FeedbackType | None = None

    async def open(self, conversation: Conversation) -> FeedbackType | None:
        """Expose the prompt unless the viewer already reviewed this order."""
        if self._ledger.is_consumed(conversation.id, self._viewer_id):
            return None
        if conversation.order is None:
            self._ledger.consume(conversation.id, self._viewer_id)
            return None

        try:
            reviews = await self._api.get_reviews_by_order(conversation.order.id)
        except AppError:
            logger.warning(
                "Review lookup for order %s failed, not prompting", conversation.order.id,
            )
            self._ledger.consume(conversation.id, self._viewer_id)
            return None

        if any(r.get("reviewerId") == self._viewer_id for r in reviews):
            self._ledger.consume(conversation.id, self._viewer_id)
            return None

        self.pending = feedback_type_for(conversation.status)
        return self.pending

    async def submit(self, conversation: Conversation, rating: int, comment: str) -> None:
        if self.pending is None or conversation.order is None:
            raise ConflictError("No review is pending for this conversation")
        if not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5")

        counterpart = next(
            (p for p in conversation.participants if p.user_id != self._viewer_id),
            None,
        )
        await self._api.submit_feedback(
            conversation.order.id,
            specialist_id=counterpart.user_id if counterpart else None,
            rating=rating,
            comment=comment,
            feedback_type=self.pending,
        )
        self._ledger.consume(conversation.id, self._viewer_id)
        self.pending = None

    def dismiss(self, conversation_id: ConversationId) -> None:
        self._ledger.consume(conversation_id, self._viewer_id)
        self.pending = None
