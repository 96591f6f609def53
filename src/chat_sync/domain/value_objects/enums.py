from __future__ import annotations

from enum import StrEnum


class ConversationStatus(StrEnum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CLOSED = "closed"
    CANCELLED = "cancelled"
    REMOVED = "removed"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    @property
    def is_closed(self) -> bool:
        """True for every state in which sending is no longer possible."""
        return self.rank >= 2


_STATUS_RANK: dict[ConversationStatus, int] = {
    ConversationStatus.OPEN: 0,
    ConversationStatus.IN_PROGRESS: 1,
    ConversationStatus.COMPLETED: 2,
    ConversationStatus.CLOSED: 2,
    ConversationStatus.CANCELLED: 2,
    ConversationStatus.REMOVED: 3,
}


class OrderStatus(StrEnum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class MessageType(StrEnum):
    TEXT = "text"
    SYSTEM = "system"


class OrderAction(StrEnum):
    CHOOSE = "choose"
    REJECT = "reject"
    CANCEL = "cancel"
    COMPLETE = "complete"


class FeedbackType(StrEnum):
    COMPLETED = "completed"
    CANCELED = "canceled"


class ChannelEvent(StrEnum):
    NEW_MESSAGE = "new-message"
    STATUS_UPDATED = "conversation-status-updated"
    CONVERSATION_DELETED = "conversation-deleted"
    TYPING = "client-typing"


class TypingPhase(StrEnum):
    IDLE = "idle"
    ACTIVE = "active"
    EXPIRING = "expiring"
