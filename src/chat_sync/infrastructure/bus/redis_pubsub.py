"""Redis Pub/Sub push-channel provider: subscriber task plus client-event publish."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine

import redis.asyncio as aioredis

from chat_sync.application.ports.channel import EventHandler
from chat_sync.infrastructure.bus.serializer import decode_envelope, encode_envelope

logger = logging.getLogger(__name__)


class RedisSubscription:
    """Local handler table for one Redis channel, shared by every binder on it."""

    def __init__(self, provider: RedisChannelProvider, name: str) -> None:
        self._provider = provider
        self.name = name
        self._handlers: dict[str, list[EventHandler]] = {}
        self.refs = 0

    def bind(self, event: str, handler: EventHandler) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def unbind(self, event: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)
            if not handlers:
                del self._handlers[event]

    def unbind_all(self) -> None:
        self._handlers.clear()

    def trigger(self, event: str, data: dict[str, Any]) -> bool:
        return self._provider.publish(self.name, event, data)

    def dispatch(self, event: str, data: dict[str, Any]) -> None:
        for handler in list(self._handlers.get(event, ())):
            try:
                handler(data)
            except Exception:
                logger.exception("Handler for %s on %s failed", event, self.name)


class RedisChannelProvider:
    """Implements application.ports.channel.ChannelProvider over Redis Pub/Sub.

    ``subscribe`` returns None until ``start`` has run, which the binder
    treats as a failed attempt and retries once.
    """

    def __init__(self, redis: aioredis.Redis, *, poll_timeout: float = 1.0) -> None:
        self._redis = redis
        self._poll_timeout = poll_timeout
        self._pubsub: Any = None
        self._task: asyncio.Task[None] | None = None
        self._subscriptions: dict[str, RedisSubscription] = {}
        self._pending: set[asyncio.Task[Any]] = set()

    @property
    def started(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        self._pubsub = self._redis.pubsub()
        self._task = asyncio.create_task(self._listen(), name="redis-channel-listener")
        logger.info("Redis channel provider started")

    async def stop(self) -> None:
        for task in list(self._pending):
            task.cancel()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._pubsub is not None:
            await self._pubsub.aclose()
            self._pubsub = None
        self._subscriptions.clear()
        logger.info("Redis channel provider stopped")

    def subscribe(self, channel_name: str) -> RedisSubscription | None:
        if not self.started:
            return None
        subscription = self._subscriptions.get(channel_name)
        if subscription is None:
            subscription = RedisSubscription(self, channel_name)
            self._subscriptions[channel_name] = subscription
            self._spawn(self._pubsub.subscribe(channel_name))
            logger.debug("Subscribing to %s", channel_name)
        subscription.refs += 1
        return subscription

    def unsubscribe(self, channel_name: str) -> None:
        subscription = self._subscriptions.get(channel_name)
        if subscription is None:
            return
        subscription.refs -= 1
        if subscription.refs > 0:
            return
        del self._subscriptions[channel_name]
        subscription.unbind_all()
        if self.started:
            self._spawn(self._pubsub.unsubscribe(channel_name))
            logger.debug("Unsubscribing from %s", channel_name)

    def publish(self, channel_name: str, event: str, data: dict[str, Any]) -> bool:
        if not self.started:
            return False
        self._spawn(self._redis.publish(channel_name, encode_envelope(event, data)))
        return True

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._command_done)

    def _command_done(self, task: asyncio.Task[Any]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Redis command failed", exc_info=exc)

    async def _listen(self) -> None:
        while True:
            try:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=self._poll_timeout,
                )
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Redis pubsub read failed")
                await asyncio.sleep(self._poll_timeout)
                continue
            if message is None or message.get("type") != "message":
                # no channels subscribed yet returns immediately
                if message is None and not self._subscriptions:
                    await asyncio.sleep(self._poll_timeout)
                continue
            self._deliver(message)

    def _deliver(self, message: dict[str, Any]) -> None:
        channel = message["channel"]
        if isinstance(channel, bytes):
            channel = channel.decode()
        subscription = self._subscriptions.get(channel)
        if subscription is None:
            return
        try:
            event, data = decode_envelope(message["data"])
        except ValueError:
            logger.warning("Dropping malformed frame on %s", channel)
            return
        subscription.dispatch(event, data)
