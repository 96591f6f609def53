from __future__ import annotations

import json

import httpx
import pytest

from chat_sync.application.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from chat_sync.domain.value_objects.enums import (
    ConversationStatus,
    FeedbackType,
    MessageType,
    OrderAction,
)
from chat_sync.infrastructure.http.chat_api import HttpChatApi

BASE = "https://api.example.test/api"

CONVERSATION_JSON = {
    "id": 1,
    "status": "in_progress",
    "updatedAt": "2024-05-01T12:00:00.000Z",
    "Participants": [
        {"userId": 42, "isActive": True, "User": {"id": 42, "name": "Alice"}},
        {"userId": 7, "isActive": False, "User": {"id": 7, "name": "Bob"}},
    ],
    "Order": {"id": 77, "title": "Fix the sink", "status": "in_progress", "clientId": 42},
    "_count": {"Messages": 237},
}


def _api(handler) -> tuple[HttpChatApi, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def _record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(_record))
    return HttpChatApi(client, BASE + "/", "secret-token"), seen


@pytest.mark.asyncio
async def test_get_conversation_parses_backend_shape():
    api, seen = _api(lambda _r: httpx.Response(200, json=CONVERSATION_JSON))

    conversation = await api.get_conversation(1)

    assert str(seen[0].url) == f"{BASE}/chat/conversations/1"
    assert seen[0].headers["Authorization"] == "Bearer secret-token"
    assert conversation.status is ConversationStatus.IN_PROGRESS
    assert conversation.message_count == 237
    assert conversation.order.client_id == 42
    assert conversation.participant(7).name == "Bob"
    assert not conversation.participant(7).is_active
    assert conversation.updated_at.tzinfo is not None


@pytest.mark.asyncio
async def test_get_messages_passes_page_and_limit():
    body = {
        "messages": [
            {
                "id": 201,
                "conversationId": 1,
                "senderId": 7,
                "content": "hi",
                "messageType": "text",
                "createdAt": "2024-05-01T12:00:00Z",
            },
        ],
        "pagination": {"page": 3, "limit": 100, "total": 237, "totalPages": 3},
    }
    api, seen = _api(lambda _r: httpx.Response(200, json=body))

    page = await api.get_messages(1, page=3, limit=100)

    assert seen[0].url.params["page"] == "3"
    assert seen[0].url.params["limit"] == "100"
    assert page.pagination.total == 237
    assert [m.id for m in page.messages] == [201]


@pytest.mark.asyncio
async def test_send_message_body():
    reply = {
        "id": 900,
        "conversationId": 1,
        "senderId": 42,
        "content": "hello",
        "messageType": "text",
        "createdAt": "2024-05-01T12:00:05Z",
    }
    api, seen = _api(lambda _r: httpx.Response(201, json=reply))

    message = await api.send_message(1, "hello", MessageType.TEXT)

    assert json.loads(seen[0].content) == {"conversationId": 1, "content": "hello", "messageType": "text"}
    assert message.id == 900


@pytest.mark.asyncio
async def test_order_action_and_feedback_endpoints():
    api, seen = _api(lambda _r: httpx.Response(200, json={"success": True}))

    await api.order_action(77, OrderAction.COMPLETE)
    await api.submit_feedback(
        77, specialist_id=7, rating=5, comment="ok", feedback_type=FeedbackType.COMPLETED,
    )
    await api.send_typing_status(1, True)

    assert [r.url.path for r in seen] == [
        "/api/chat/orders/77/complete",
        "/api/reviews/feedback",
        "/api/chat/conversations/1/typing",
    ]
    assert json.loads(seen[1].content)["feedbackType"] == "completed"
    assert json.loads(seen[2].content) == {"isTyping": True}


@pytest.mark.asyncio
async def test_reviews_accept_list_or_wrapped():
    api, _ = _api(lambda _r: httpx.Response(200, json=[{"reviewerId": 42}]))
    assert await api.get_reviews_by_order(77) == [{"reviewerId": 42}]

    api, _ = _api(lambda _r: httpx.Response(200, json={"reviews": [{"reviewerId": 7}]}))
    assert await api.get_reviews_by_order(77) == [{"reviewerId": 7}]


@pytest.mark.asyncio
async def test_mark_as_read_with_empty_body():
    api, seen = _api(lambda _r: httpx.Response(204))
    await api.mark_as_read(1)
    assert seen[0].method == "POST"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "error"),
    [
        (400, ValidationError),
        (403, ForbiddenError),
        (404, NotFoundError),
        (409, ConflictError),
        (500, TransportError),
        (503, TransportError),
    ],
)
async def test_status_mapping(status, error):
    api, _ = _api(lambda _r: httpx.Response(status, json={"message": "nope"}))
    with pytest.raises(error) as exc_info:
        await api.mark_as_read(1)
    assert exc_info.value.detail == "nope"


@pytest.mark.asyncio
async def test_network_error_is_transport_error():
    def _fail(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    api, _ = _api(_fail)
    with pytest.raises(TransportError):
        await api.get_conversation(1)


@pytest.mark.asyncio
async def test_unexpected_payload_is_transport_error():
    api, _ = _api(lambda _r: httpx.Response(200, json={"unexpected": True}))
    with pytest.raises(TransportError):
        await api.get_conversation(1)


@pytest.mark.asyncio
async def test_unknown_conversation_status_is_read_as_open():
    body = dict(CONVERSATION_JSON, status="archived")
    api, _ = _api(lambda _r: httpx.Response(200, json=body))

    conversation = await api.get_conversation(1)

    assert conversation.status is ConversationStatus.OPEN
    assert conversation.message_count == 237
