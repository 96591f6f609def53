from __future__ import annotations

import re

from chat_sync.application.exceptions import ConflictError, ForbiddenError, ValidationError
from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.value_objects.enums import OrderStatus
from chat_sync.domain.value_objects.ids import UserId

_PHONE_RE = re.compile(r"\+?[1-9](?:[\s\-().]*\d){8,14}")
_EMAIL_RE = re.compile(r"[\w.+-]+@[\w-]+\.[\w.-]+")

# Order states in which the parties have agreed and may exchange contacts.
_CONTACTS_ALLOWED = frozenset({
    OrderStatus.IN_PROGRESS,
    OrderStatus.COMPLETED,
})


def contains_contact_details(text: str) -> bool:
    return bool(_PHONE_RE.search(text) or _EMAIL_RE.search(text))


def normalize_content(text: str, max_length: int) -> str:
    """Strip and validate raw composer text, returning what would be sent."""
    content = text.strip()
    if not content:
        raise ValidationError("Message is empty")
    if len(content) > max_length:
        raise ValidationError(f"Message exceeds {max_length} characters")
    return content


def assert_can_send(
    conversation: Conversation | None,
    viewer_id: UserId,
    content: str,
) -> None:
    """Raise if the current canonical state forbids sending ``content``."""
    if conversation is None:
        raise ConflictError("Conversation is not loaded")

    if conversation.status.is_closed:
        raise ConflictError(f"Conversation is {conversation.status}")

    me = conversation.participant(viewer_id)
    if me is not None and not me.is_active:
        raise ForbiddenError("You are no longer a participant of this conversation")

    order = conversation.order
    if order is not None and order.status not in _CONTACTS_ALLOWED:
        if contains_contact_details(content):
            raise ValidationError(
                "Contact details can be shared once the order is accepted"
            )
