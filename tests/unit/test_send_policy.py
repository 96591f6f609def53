from __future__ import annotations

import pytest

from chat_sync.application.exceptions import ConflictError, ForbiddenError, ValidationError
from chat_sync.application.policies.send_policy import (
    assert_can_send,
    contains_contact_details,
    normalize_content,
)
from chat_sync.domain.value_objects.enums import ConversationStatus, OrderStatus
from tests.conftest import CLIENT_ID, SPECIALIST_ID, make_conversation


@pytest.mark.parametrize(
    "text",
    ["call me at +1 415 555 2671", "my number is 8 (999) 123-45-67", "write to bob@example.com"],
)
def test_contact_details_detected(text):
    assert contains_contact_details(text)


@pytest.mark.parametrize("text", ["see you at 10:30", "budget is 1500", "order #12345"])
def test_plain_text_passes(text):
    assert not contains_contact_details(text)


def test_normalize_content():
    assert normalize_content("  hello \n", 500) == "hello"
    with pytest.raises(ValidationError):
        normalize_content("   ", 500)
    with pytest.raises(ValidationError):
        normalize_content("x" * 501, 500)


def test_closed_conversation_refuses():
    with pytest.raises(ConflictError):
        assert_can_send(make_conversation(status=ConversationStatus.CLOSED), CLIENT_ID, "hi")


def test_not_loaded_refuses():
    with pytest.raises(ConflictError):
        assert_can_send(None, CLIENT_ID, "hi")


def test_inactive_participant_refuses():
    conversation = make_conversation(specialist_active=False)
    with pytest.raises(ForbiddenError):
        assert_can_send(conversation, SPECIALIST_ID, "hi")


def test_contacts_blocked_until_order_in_progress():
    with pytest.raises(ValidationError):
        assert_can_send(make_conversation(), CLIENT_ID, "mail me: a@b.io")
    assert_can_send(
        make_conversation(status=ConversationStatus.IN_PROGRESS, order_status=OrderStatus.IN_PROGRESS),
        CLIENT_ID,
        "mail me: a@b.io",
    )
