from __future__ import annotations

from typing import Callable

from chat_sync.domain.value_objects.ids import ConversationId

Listener = Callable[[ConversationId | None], None]


class ActiveConversation:
    """Observable id of the conversation currently on screen.

    Read elsewhere to suppress unread-badge increments for the open chat.
    """

    def __init__(self) -> None:
        self._current: ConversationId | None = None
        self._listeners: list[Listener] = []

    @property
    def current(self) -> ConversationId | None:
        return self._current

    def set(self, conversation_id: ConversationId) -> None:
        if self._current == conversation_id:
            return
        self._current = conversation_id
        self._notify()

    def clear(self, expected: ConversationId) -> None:
        """Clear only if ``expected`` is still the active one."""
        if self._current != expected:
            return
        self._current = None
        self._notify()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._current)
