"""History loading, optimistic sends and the push-path entry point."""
from __future__ import annotations

import logging
import math
import uuid

from chat_sync.application.dto.page import MessagePage
from chat_sync.application.exceptions import AppError
from chat_sync.application.ports.chat_api import ChatApi
from chat_sync.application.ports.clock import Clock, SystemClock
from chat_sync.domain.entities.message import LocalPending, Message
from chat_sync.domain.value_objects.enums import MessageType
from chat_sync.domain.value_objects.ids import ConversationId, UserId
from chat_sync.services.message_store import MessageStore

logger = logging.getLogger(__name__)


def newest_page(total: int, page_size: int) -> int:
    """Page number holding the newest messages (pages are oldest-first)."""
    if total <= 0:
        return 1
    return math.ceil(total / page_size)


class PaginationCoordinator:
    def __init__(
        self,
        api: ChatApi,
        store: MessageStore,
        conversation_id: ConversationId,
        *,
        page_size: int = 50,
        clock: Clock | None = None,
    ) -> None:
        self._api = api
        self._store = store
        self._conversation_id = conversation_id
        self._page_size = page_size
        self._clock = clock or SystemClock()
        self._oldest_page: int | None = None
        self._loading = 0
        self._buffer: list[Message] = []

    @property
    def oldest_page(self) -> int | None:
        return self._oldest_page

    @property
    def has_older(self) -> bool:
        return self._oldest_page is not None and self._oldest_page > 1

    @property
    def loading(self) -> bool:
        return self._loading > 0

    async def load_initial(self, total_hint: int | None = None) -> MessagePage:
        """Fetch the newest page and replace the store with it."""
        try:
            page = await self._fetch_newest(total_hint)
            self._store.replace_all(page.messages)
            self._oldest_page = page.pagination.page
        finally:
            self._replay_buffer()
        return page

    async def load_initial_preserving(self, total_hint: int | None = None) -> MessagePage:
        """Like ``load_initial`` but merges, keeping in-flight optimistic sends."""
        try:
            page = await self._fetch_newest(total_hint)
            self._store.merge(page.messages)
            if self._oldest_page is None or page.pagination.page < self._oldest_page:
                self._oldest_page = page.pagination.page
        finally:
            self._replay_buffer()
        return page

    async def load_older(self) -> int:
        if not self.has_older:
            return 0
        target = self._oldest_page - 1  # type: ignore[operator]
        self._loading += 1
        try:
            page = await self._api.get_messages(
                self._conversation_id, page=target, limit=self._page_size,
            )
        finally:
            self._loading -= 1
            self._replay_buffer()
        added = self._store.merge(page.messages)
        self._oldest_page = target
        return added

    def append_incoming(self, message: Message) -> bool:
        """Push-path entry: reconcile with a pending send or append."""
        if self._loading:
            self._buffer.append(message)
            return message.id not in self._store
        if self._store.reconcile(message):
            return True
        return self._store.append(message)

    def begin_send(
        self,
        content: str,
        sender_id: UserId,
        message_type: MessageType = MessageType.TEXT,
    ) -> Message:
        """Insert the optimistic entry for ``content`` and return it."""
        pending = Message(
            ref=LocalPending(uuid.uuid4()),
            conversation_id=self._conversation_id,
            sender_id=sender_id,
            content=content,
            message_type=message_type,
            created_at=self._clock.now(),
        )
        self._store.append(pending)
        return pending

    async def confirm_send(self, pending: Message) -> Message:
        """Send ``pending`` to the backend and reconcile the response.

        On failure the pending entry is withdrawn and the error re-raised.
        """
        temp_key = pending.temp_key
        assert temp_key is not None, "confirm_send needs a pending message"
        try:
            confirmed = await self._api.send_message(
                self._conversation_id, pending.content, pending.message_type,
            )
        except AppError:
            self._store.remove_pending(temp_key)
            raise

        if not self._store.reconcile(confirmed, temp_key=temp_key):
            # a fetched page or push already absorbed the pending entry
            self._store.append(confirmed)
        return confirmed

    async def send(
        self,
        content: str,
        sender_id: UserId,
        message_type: MessageType = MessageType.TEXT,
    ) -> Message:
        return await self.confirm_send(self.begin_send(content, sender_id, message_type))

    async def _fetch_newest(self, total_hint: int | None) -> MessagePage:
        self._loading += 1
        try:
            if total_hint is None:
                first = await self._api.get_messages(
                    self._conversation_id, page=1, limit=self._page_size,
                )
                target = newest_page(first.pagination.total, self._page_size)
                if target == 1:
                    return first
            else:
                target = newest_page(total_hint, self._page_size)

            page = await self._api.get_messages(
                self._conversation_id, page=target, limit=self._page_size,
            )
            logger.debug(
                "Loaded page %d of conversation %s (%d messages)",
                target, self._conversation_id, len(page.messages),
            )
            return page
        finally:
            self._loading -= 1

    def _replay_buffer(self) -> None:
        if self._loading:
            return
        buffered, self._buffer = self._buffer, []
        for message in buffered:
            if self._store.reconcile(message):
                continue
            self._store.append(message)

