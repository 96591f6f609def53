from __future__ import annotations

from typing import Any, Callable, Protocol

EventHandler = Callable[[dict[str, Any]], None]


class Subscription(Protocol):
    """One subscribed push channel as exposed by the transport."""

    name: str

    def bind(self, event: str, handler: EventHandler) -> None: ...

    def unbind(self, event: str, handler: EventHandler) -> None: ...

    def unbind_all(self) -> None: ...

    def trigger(self, event: str, data: dict[str, Any]) -> bool: ...


class ChannelProvider(Protocol):
    def subscribe(self, channel_name: str) -> Subscription | None:
        """Return the subscription, or None if the transport cannot subscribe yet."""
        ...

    def unsubscribe(self, channel_name: str) -> None: ...
