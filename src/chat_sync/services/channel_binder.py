"""Subscribe/retry/unsubscribe against the external push-channel provider."""
from __future__ import annotations

import logging
from types import TracebackType
from typing import Any, Callable, Mapping

from chat_sync.application.ports.channel import ChannelProvider, EventHandler, Subscription
from chat_sync.application.ports.clock import Scheduler, TimerHandle

logger = logging.getLogger(__name__)


class ChannelHandle:
    """Owned subscription to one channel. ``dispose`` releases everything."""

    def __init__(
        self,
        binder: ChannelBinder,
        channel_name: str,
        handlers: Mapping[str, EventHandler],
    ) -> None:
        self._binder = binder
        self.channel_name = channel_name
        self._handlers = dict(handlers)
        self._subscription: Subscription | None = None
        self._retry_timer: TimerHandle | None = None
        self._attempts = 0
        self.degraded = False
        self.disposed = False

    @property
    def bound(self) -> bool:
        return self._subscription is not None

    def trigger(self, event: str, data: dict[str, Any]) -> bool:
        if self._subscription is None:
            return False
        return self._subscription.trigger(event, data)

    def _attempt(self) -> bool:
        self._retry_timer = None
        if self.disposed:
            return False
        self._attempts += 1
        try:
            subscription = self._binder._provider.subscribe(self.channel_name)
        except Exception:
            logger.exception("Subscribe to %s raised", self.channel_name)
            subscription = None
        if subscription is None:
            return False

        for event, handler in self._handlers.items():
            # unbind first so a rebind never delivers twice
            subscription.unbind(event, handler)
            subscription.bind(event, handler)
        self._subscription = subscription
        self.degraded = False
        logger.info("Bound %s (attempt %d)", self.channel_name, self._attempts)
        return True

    def _on_retry(self) -> None:
        if self._attempt():
            self._binder._notify()
            return
        self.degraded = True
        logger.warning(
            "Could not bind %s after retry, continuing without realtime updates",
            self.channel_name,
        )
        self._binder._notify()

    def dispose(self) -> None:
        if self.disposed:
            return
        self.disposed = True
        if self._retry_timer is not None:
            self._retry_timer.cancel()
            self._retry_timer = None
        if self._subscription is not None:
            for event, handler in self._handlers.items():
                self._subscription.unbind(event, handler)
            self._subscription = None
            try:
                self._binder._provider.unsubscribe(self.channel_name)
            except Exception:
                logger.exception("Unsubscribe from %s raised", self.channel_name)
            logger.info("Unbound %s", self.channel_name)
        self._binder._forget(self)

    def __enter__(self) -> ChannelHandle:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.dispose()


class ChannelBinder:
    """Issues ``ChannelHandle``s; one delayed retry per handle, never a loop."""

    def __init__(
        self,
        provider: ChannelProvider,
        scheduler: Scheduler,
        *,
        retry_delay: float = 1.0,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._provider = provider
        self._scheduler = scheduler
        self._retry_delay = retry_delay
        self._on_change = on_change
        self._handles: list[ChannelHandle] = []

    @property
    def handles(self) -> tuple[ChannelHandle, ...]:
        return tuple(self._handles)

    @property
    def degraded(self) -> bool:
        return any(h.degraded for h in self._handles)

    def bind(self, channel_name: str, handlers: Mapping[str, EventHandler]) -> ChannelHandle:
        for existing in list(self._handles):
            if existing.channel_name == channel_name:
                logger.debug("Already bound to %s, releasing first", channel_name)
                existing.dispose()

        handle = ChannelHandle(self, channel_name, handlers)
        self._handles.append(handle)
        if not handle._attempt():
            logger.warning(
                "Subscribe to %s yielded nothing, retrying in %.1fs",
                channel_name, self._retry_delay,
            )
            handle._retry_timer = self._scheduler.call_later(self._retry_delay, handle._on_retry)
        return handle

    def unbind(self) -> None:
        for handle in list(self._handles):
            handle.dispose()

    def _forget(self, handle: ChannelHandle) -> None:
        if handle in self._handles:
            self._handles.remove(handle)

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()
