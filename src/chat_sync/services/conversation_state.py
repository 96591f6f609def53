"""Canonical conversation/order status and its transitions."""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable

from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.events.status_changed import StatusChanged
from chat_sync.domain.value_objects.enums import ConversationStatus, OrderAction, OrderStatus
from chat_sync.domain.value_objects.ids import UserId
from chat_sync.services.feedback import FeedbackLedger

logger = logging.getLogger(__name__)


def can_transition(current: ConversationStatus, new: ConversationStatus) -> bool:
    """Monotonic rule: ranks never decrease, closed states only lead to removed."""
    if current == new:
        return False
    if current == ConversationStatus.REMOVED:
        return False
    if new == ConversationStatus.REMOVED:
        return True
    if current.is_closed:
        return False
    return new.rank >= current.rank


class ConversationStateMachine:
    """Holds the conversation as last confirmed by the server.

    Two sources feed it: snapshots reloaded after a confirmed local intent
    (``apply_snapshot``) and pushed status events (``apply_pushed_status``).
    Neither may move the status backwards.
    """

    def __init__(
        self,
        viewer_id: UserId,
        ledger: FeedbackLedger,
        *,
        on_change: Callable[[], None] | None = None,
        on_feedback_due: Callable[[Conversation], None] | None = None,
    ) -> None:
        self._viewer_id = viewer_id
        self._ledger = ledger
        self._on_change = on_change or (lambda: None)
        self._on_feedback_due = on_feedback_due or (lambda _c: None)
        self._conversation: Conversation | None = None
        self._feedback_fired = False

    @property
    def conversation(self) -> Conversation | None:
        return self._conversation

    @property
    def status(self) -> ConversationStatus | None:
        return self._conversation.status if self._conversation else None

    @property
    def is_closed(self) -> bool:
        return self._conversation is not None and self._conversation.status.is_closed

    @property
    def is_owner(self) -> bool:
        c = self._conversation
        return c is not None and c.order is not None and c.order.client_id == self._viewer_id

    @property
    def can_send(self) -> bool:
        c = self._conversation
        if c is None or c.status.is_closed:
            return False
        me = c.participant(self._viewer_id)
        return me is None or me.is_active

    def available_actions(self) -> tuple[OrderAction, ...]:
        c = self._conversation
        if c is None or c.order is None or not self.is_owner or c.status.is_closed:
            return ()
        if c.order.status == OrderStatus.OPEN:
            return (OrderAction.REJECT, OrderAction.CHOOSE)
        if c.order.status == OrderStatus.IN_PROGRESS:
            return (OrderAction.CANCEL, OrderAction.COMPLETE)
        return ()

    def load(self, conversation: Conversation) -> None:
        """Initial snapshot on mount."""
        self._conversation = conversation
        self._on_change()
        self._maybe_prompt_feedback()

    def apply_snapshot(self, conversation: Conversation) -> bool:
        """Apply a reload that follows a backend-confirmed local intent.

        Participants and order details always refresh; the status only moves
        forward. Returns True if anything changed.
        """
        current = self._conversation
        if current is None:
            self.load(conversation)
            return True

        status = current.status
        if can_transition(current.status, conversation.status):
            status = conversation.status
        elif conversation.status != current.status:
            logger.info(
                "Ignoring reloaded status %s for conversation %s (current %s)",
                conversation.status, current.id, current.status,
            )
        updated = replace(conversation, status=status)
        if updated == current:
            return False
        self._conversation = updated
        self._on_change()
        self._maybe_prompt_feedback()
        return True

    def apply_pushed_status(self, event: StatusChanged) -> bool:
        current = self._conversation
        if current is None:
            logger.debug("Status push before load, ignored")
            return False
        if event.conversation_id != current.id:
            logger.warning(
                "Status update for conversation %s delivered to %s",
                event.conversation_id, current.id,
            )
            return False
        if event.updated_at is not None and event.updated_at < current.updated_at:
            logger.debug("Stale status push %s for conversation %s", event.status, current.id)
            return False
        if not can_transition(current.status, event.status):
            if event.status != current.status:
                logger.info(
                    "Rejected status push %s -> %s for conversation %s",
                    current.status, event.status, current.id,
                )
            return False

        updated = replace(
            current,
            status=event.status,
            updated_at=event.updated_at or current.updated_at,
        )
        if event.status == ConversationStatus.CLOSED and not self.is_owner:
            # non-owners receive no separate removal event
            updated = updated.with_participant_inactive(self._viewer_id)

        self._conversation = updated
        logger.info("Conversation %s status -> %s", current.id, event.status)
        self._on_change()
        self._maybe_prompt_feedback()
        return True

    def mark_removed(self) -> bool:
        current = self._conversation
        if current is None or current.status == ConversationStatus.REMOVED:
            return False
        self._conversation = replace(current, status=ConversationStatus.REMOVED)
        logger.info("Conversation %s removed", current.id)
        self._on_change()
        return True

    def _maybe_prompt_feedback(self) -> None:
        c = self._conversation
        if c is None or self._feedback_fired:
            return
        if not c.status.is_closed or c.status == ConversationStatus.REMOVED:
            return
        if self._ledger.is_consumed(c.id, self._viewer_id):
            return
        self._feedback_fired = True
        self._on_feedback_due(c)
