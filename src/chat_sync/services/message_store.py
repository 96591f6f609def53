"""Deduplicated, ordered message collection for a single conversation."""
from __future__ import annotations

import bisect
import logging
from datetime import timedelta
from typing import Iterable, Iterator
from uuid import UUID

from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.ids import MessageId

logger = logging.getLogger(__name__)


def _sort_key(message: Message):
    return message.sort_key


class MessageStore:
    """Holds confirmed and pending messages in rendered order.

    Confirmed entries are unique by id. Pending entries (optimistic sends)
    are inserted unconditionally and later replaced by their authoritative
    counterpart via ``reconcile`` or ``merge``; they are never duplicated.
    """

    def __init__(self, *, reconcile_window: float = 30.0) -> None:
        self._entries: list[Message] = []
        self._ids: set[MessageId] = set()
        self._window = timedelta(seconds=reconcile_window)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._entries))

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._ids

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._entries)

    @property
    def pending(self) -> tuple[Message, ...]:
        return tuple(m for m in self._entries if m.is_pending)

    def get(self, message_id: MessageId) -> Message | None:
        if message_id not in self._ids:
            return None
        for m in self._entries:
            if m.id == message_id:
                return m
        return None

    def append(self, message: Message) -> bool:
        """Insert ``message`` unless its id is already present.

        Returns True if the store changed.
        """
        mid = message.id
        if mid is not None:
            if mid in self._ids:
                return False
            self._ids.add(mid)
        bisect.insort(self._entries, message, key=_sort_key)
        return True

    def reconcile(self, server_message: Message, temp_key: UUID | None = None) -> bool:
        """Replace the pending entry matching ``server_message``.

        With ``temp_key`` the pending entry is located exactly (send response
        path). Without it the oldest pending entry from the same sender with
        identical content inside the reconcile window is used (push echo
        path). Returns True if a pending entry was absorbed.

        A redelivered push for a stored id never touches pending entries.
        """
        mid = server_message.id
        if mid is None:
            return False
        if temp_key is None and mid in self._ids:
            return False

        index = self._find_pending(server_message, temp_key)
        if index is None:
            return False

        if mid in self._ids:
            # the echo was already stored; withdraw the optimistic copy
            del self._entries[index]
            logger.debug("Dropped pending duplicate of message %s", mid)
            return True

        self._ids.add(mid)
        self._entries[index] = server_message
        if not self._ordered_around(index):
            del self._entries[index]
            bisect.insort(self._entries, server_message, key=_sort_key)
        return True

    def merge(self, page: Iterable[Message]) -> int:
        """Insert a fetched page, skipping known ids. Returns the number added."""
        added = 0
        for message in page:
            mid = message.id
            if mid is None or mid in self._ids:
                continue
            index = self._find_pending(message, None)
            if index is not None:
                self._entries[index] = message
            else:
                self._entries.append(message)
            self._ids.add(mid)
            added += 1
        self._entries.sort(key=_sort_key)
        return added

    def replace_all(self, messages: Iterable[Message]) -> None:
        self._entries = []
        self._ids = set()
        for message in messages:
            self.append(message)

    def remove_pending(self, temp_key: UUID) -> bool:
        for index, m in enumerate(self._entries):
            if m.temp_key == temp_key:
                del self._entries[index]
                return True
        return False

    def _find_pending(self, server_message: Message, temp_key: UUID | None) -> int | None:
        if temp_key is not None:
            for index, m in enumerate(self._entries):
                if m.temp_key == temp_key:
                    return index
            return None

        for index, m in enumerate(self._entries):
            if not m.is_pending:
                continue
            if m.sender_id != server_message.sender_id:
                continue
            if m.content != server_message.content:
                continue
            if abs(m.created_at - server_message.created_at) <= self._window:
                return index
        return None

    def _ordered_around(self, index: int) -> bool:
        key = _sort_key(self._entries[index])
        if index > 0 and _sort_key(self._entries[index - 1]) > key:
            return False
        if index + 1 < len(self._entries) and key > _sort_key(self._entries[index + 1]):
            return False
        return True
