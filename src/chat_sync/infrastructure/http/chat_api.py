"""Backend REST client over a shared httpx.AsyncClient."""
from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError as PayloadError

from chat_sync.application.dto.page import MessagePage
from chat_sync.application.dto.wire import (
    ConversationPayload,
    MessagePayload,
    MessagesPagePayload,
)
from chat_sync.application.exceptions import (
    AppError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.enums import FeedbackType, MessageType, OrderAction
from chat_sync.domain.value_objects.ids import ConversationId, OrderId, UserId

logger = logging.getLogger(__name__)

_STATUS_ERRORS: dict[int, type[AppError]] = {
    400: ValidationError,
    403: ForbiddenError,
    404: NotFoundError,
    409: ConflictError,
    422: ValidationError,
}


class HttpChatApi:
    """Implements application.ports.chat_api.ChatApi for one bearer token."""

    def __init__(self, client: httpx.AsyncClient, base_url: str, token: str) -> None:
        self._client = client
        self._base_url = base_url.strip().rstrip("/")
        self._token = token

    async def get_conversation(self, conversation_id: ConversationId) -> Conversation:
        data = await self._request("GET", f"/chat/conversations/{conversation_id}")
        return self._parse(ConversationPayload, data).to_entity()

    async def get_messages(
        self, conversation_id: ConversationId, *, page: int, limit: int,
    ) -> MessagePage:
        data = await self._request(
            "GET",
            f"/chat/conversations/{conversation_id}/messages",
            params={"page": page, "limit": limit},
        )
        return self._parse(MessagesPagePayload, data).to_page()

    async def mark_as_read(self, conversation_id: ConversationId) -> None:
        await self._request("POST", f"/chat/conversations/{conversation_id}/read")

    async def send_message(
        self,
        conversation_id: ConversationId,
        content: str,
        message_type: MessageType = MessageType.TEXT,
    ) -> Message:
        data = await self._request(
            "POST",
            "/chat/messages",
            json={
                "conversationId": conversation_id,
                "content": content,
                "messageType": message_type.value,
            },
        )
        return self._parse(MessagePayload, data).to_entity()

    async def send_typing_status(self, conversation_id: ConversationId, is_typing: bool) -> None:
        await self._request(
            "POST",
            f"/chat/conversations/{conversation_id}/typing",
            json={"isTyping": is_typing},
        )

    async def order_action(self, order_id: OrderId, action: OrderAction) -> dict[str, Any]:
        data = await self._request("POST", f"/chat/orders/{order_id}/{action.value}")
        return data if isinstance(data, dict) else {}

    async def get_reviews_by_order(self, order_id: OrderId) -> list[dict[str, Any]]:
        data = await self._request("GET", f"/reviews/order/{order_id}")
        if isinstance(data, dict):
            data = data.get("reviews", data.get("data", []))
        if not isinstance(data, list):
            return []
        return [r for r in data if isinstance(r, dict)]

    async def submit_feedback(
        self,
        order_id: OrderId,
        *,
        specialist_id: UserId | None,
        rating: int,
        comment: str,
        feedback_type: FeedbackType,
    ) -> None:
        body: dict[str, Any] = {
            "orderId": order_id,
            "rating": rating,
            "comment": comment,
            "feedbackType": feedback_type.value,
        }
        if specialist_id is not None:
            body["specialistId"] = specialist_id
        await self._request("POST", "/reviews/feedback", json=body)

    # -- helpers -----------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        url = f"{self._base_url}{path}"
        try:
            response = await self._client.request(
                method,
                url,
                params=params,
                json=json,
                headers={"Authorization": f"Bearer {self._token}"},
            )
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise TransportError(f"Network error: {exc}") from exc

        if not response.is_success:
            detail = _error_detail(response)
            error_cls = _STATUS_ERRORS.get(response.status_code)
            if error_cls is not None:
                raise error_cls(detail)
            logger.warning("%s %s -> HTTP %d", method, path, response.status_code)
            raise TransportError(detail, status_code=response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"Malformed response from {path}") from exc

    @staticmethod
    def _parse(model: Any, data: Any) -> Any:
        try:
            return model.model_validate(data)
        except PayloadError as exc:
            logger.warning("Unexpected %s payload: %s", model.__name__, exc)
            raise TransportError(f"Unexpected {model.__name__} payload") from exc


def _error_detail(response: httpx.Response) -> str:
    try:
        parsed = response.json()
    except ValueError:
        parsed = None
    if isinstance(parsed, dict):
        message = parsed.get("message") or parsed.get("detail") or parsed.get("error")
        if isinstance(message, str) and message:
            return message
    return f"HTTP error! status: {response.status_code}"
