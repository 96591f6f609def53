"""Chat screen wiring: owns the per-conversation stores for one mount."""
from __future__ import annotations

import asyncio
import logging
from contextlib import ExitStack
from typing import Any, Callable, Coroutine

from pydantic import ValidationError as PayloadError

from chat_sync.application.dto.view import ActionResult, ConversationView
from chat_sync.application.dto.wire import (
    ConversationDeletedPayload,
    MessagePayload,
    StatusChangedPayload,
    TypingPayload,
)
from chat_sync.application.exceptions import AppError
from chat_sync.application.policies.send_policy import assert_can_send, normalize_content
from chat_sync.application.ports.channel import ChannelProvider
from chat_sync.application.ports.chat_api import ChatApi
from chat_sync.application.ports.clock import Clock, LoopScheduler, Scheduler
from chat_sync.config import Settings, settings as default_settings
from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.value_objects.enums import ChannelEvent, OrderAction
from chat_sync.domain.value_objects.ids import ConversationId, UserId
from chat_sync.services.active_conversation import ActiveConversation
from chat_sync.services.channel_binder import ChannelBinder, ChannelHandle
from chat_sync.services.conversation_state import ConversationStateMachine
from chat_sync.services.feedback import FeedbackLedger, FeedbackPrompt
from chat_sync.services.message_store import MessageStore
from chat_sync.services.pagination import PaginationCoordinator
from chat_sync.services.presence_tracker import PresenceTracker

logger = logging.getLogger(__name__)

ViewListener = Callable[[ConversationView], None]


class SyncOrchestrator:
    """Top-level engine behind one open chat screen.

    ``mount`` loads the conversation and its newest messages, then binds the
    conversation and presence channels. Every resource acquired on mount
    (channel handles, typing timers, background tasks) is released by
    ``unmount``, which is synchronous. Nothing here raises into the UI:
    failures become ``ConversationView.error`` or an ``ActionResult``.
    """

    def __init__(
        self,
        api: ChatApi,
        provider: ChannelProvider,
        *,
        conversation_id: ConversationId,
        viewer_id: UserId,
        active_conversation: ActiveConversation,
        feedback_ledger: FeedbackLedger,
        scheduler: Scheduler | None = None,
        clock: Clock | None = None,
        config: Settings | None = None,
    ) -> None:
        cfg = config or default_settings
        self._cfg = cfg
        self._api = api
        self._conversation_id = conversation_id
        self._viewer_id = viewer_id
        self._active = active_conversation
        scheduler = scheduler or LoopScheduler()

        self._store = MessageStore(reconcile_window=cfg.RECONCILE_WINDOW_SECONDS)
        self._pagination = PaginationCoordinator(
            api, self._store, conversation_id, page_size=cfg.PAGE_SIZE, clock=clock,
        )
        self._state = ConversationStateMachine(
            viewer_id,
            feedback_ledger,
            on_change=self._publish,
            on_feedback_due=self._on_feedback_due,
        )
        self._presence = PresenceTracker(
            scheduler,
            self._emit_typing,
            self_id=viewer_id,
            refresh_interval=cfg.TYPING_REFRESH_SECONDS,
            idle_timeout=cfg.TYPING_IDLE_SECONDS,
            expiry_window=cfg.TYPING_EXPIRY_SECONDS,
            on_change=self._publish,
        )
        self._binder = ChannelBinder(
            provider, scheduler,
            retry_delay=cfg.BIND_RETRY_DELAY_SECONDS,
            on_change=self._publish,
        )
        self._feedback = FeedbackPrompt(api, feedback_ledger, viewer_id)

        self._resources: ExitStack | None = None
        self._presence_channel: ChannelHandle | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._listeners: list[ViewListener] = []
        self._view = ConversationView(conversation_id=conversation_id)
        self._mounted = False
        self._live = False
        self._loading = False
        self._action_in_flight = False
        self._error: str | None = None

    # -- lifecycle ---------------------------------------------------------

    @property
    def conversation_id(self) -> ConversationId:
        return self._conversation_id

    @property
    def mounted(self) -> bool:
        return self._mounted

    @property
    def live(self) -> bool:
        """True once history loaded and the push channels were bound."""
        return self._live

    @property
    def view(self) -> ConversationView:
        return self._view

    async def mount(self, *, preserve: bool = False) -> bool:
        """Load history and go live. Returns False if loading failed."""
        if self._resources is None:
            self._resources = ExitStack()
            self._resources.callback(self._cancel_tasks)
            self._resources.callback(self._binder.unbind)
            self._resources.callback(self._presence.close)
        self._mounted = True
        self._active.set(self._conversation_id)

        if not await self._load(preserve=preserve):
            return False
        if not self._mounted:
            return False

        self._spawn(self._mark_read(), "mark-read")
        self._bind_channels()
        self._live = True
        self._publish()
        return True

    def unmount(self) -> None:
        if not self._mounted:
            return
        self._mounted = False
        self._live = False
        # the presence channel is still bound, so peers see typing stop
        self._presence.stop()
        if self._resources is not None:
            self._resources.close()
            self._resources = None
        self._presence_channel = None
        self._active.clear(self._conversation_id)
        self._listeners.clear()
        logger.info("Unmounted conversation %s", self._conversation_id)

    async def retry(self) -> bool:
        if self._live:
            return (await self.refresh()).ok
        return await self.mount(preserve=True)

    async def refresh(self) -> ActionResult:
        """Re-entry into an already open conversation: reload, keep pending sends."""
        if await self._load(preserve=True):
            return ActionResult.success()
        return ActionResult.failure(self._error or "Failed to load conversation")

    def subscribe(self, listener: ViewListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # -- UI entry points ---------------------------------------------------

    async def send(self, text: str) -> ActionResult:
        if not self._mounted:
            return ActionResult.failure("Conversation is not open")
        try:
            content = normalize_content(text, self._cfg.MESSAGE_MAX_LENGTH)
            assert_can_send(self._state.conversation, self._viewer_id, content)
        except AppError as exc:
            logger.info("Send refused: %s", exc.detail)
            return ActionResult.failure(exc.detail)

        self._presence.on_local_send()
        pending = self._pagination.begin_send(content, self._viewer_id)
        self._publish()
        try:
            await self._pagination.confirm_send(pending)
        except AppError as exc:
            logger.warning("Send to conversation %s failed: %s", self._conversation_id, exc.detail)
            self._set_error(exc.detail)
            return ActionResult.failure(exc.detail)
        self._error = None
        self._publish()
        return ActionResult.success()

    def set_typing(self, text: str) -> None:
        if not self._mounted:
            return
        if not self._state.can_send:
            self._presence.stop()
            return
        self._presence.on_local_input(text)

    async def choose(self) -> ActionResult:
        return await self._run_action(OrderAction.CHOOSE)

    async def reject(self) -> ActionResult:
        return await self._run_action(OrderAction.REJECT)

    async def cancel(self) -> ActionResult:
        return await self._run_action(OrderAction.CANCEL)

    async def complete(self) -> ActionResult:
        return await self._run_action(OrderAction.COMPLETE)

    async def run_action(self, action: OrderAction) -> ActionResult:
        return await self._run_action(action)

    async def load_older(self) -> ActionResult:
        try:
            await self._pagination.load_older()
        except AppError as exc:
            self._set_error(exc.detail)
            return ActionResult.failure(exc.detail)
        self._publish()
        return ActionResult.success()

    async def submit_feedback(self, rating: int, comment: str = "") -> ActionResult:
        conversation = self._state.conversation
        if conversation is None:
            return ActionResult.failure("Conversation is not loaded")
        try:
            await self._feedback.submit(conversation, rating, comment)
        except AppError as exc:
            self._set_error(exc.detail)
            return ActionResult.failure(exc.detail)
        self._publish()
        return ActionResult.success()

    def dismiss_feedback(self) -> None:
        self._feedback.dismiss(self._conversation_id)
        self._publish()

    # -- internals ---------------------------------------------------------

    async def _load(self, *, preserve: bool) -> bool:
        self._loading = True
        self._error = None
        self._publish()
        try:
            conversation = await self._api.get_conversation(self._conversation_id)
            if not self._mounted:
                return False
            if self._state.conversation is None:
                self._state.load(conversation)
            else:
                self._state.apply_snapshot(conversation)
            if preserve:
                await self._pagination.load_initial_preserving(conversation.message_count)
            else:
                await self._pagination.load_initial(conversation.message_count)
        except AppError as exc:
            logger.warning(
                "Loading conversation %s failed: %s", self._conversation_id, exc.detail,
            )
            self._loading = False
            self._set_error(exc.detail or "Failed to load conversation")
            return False
        self._loading = False
        self._publish()
        return True

    async def _run_action(self, action: OrderAction) -> ActionResult:
        conversation = self._state.conversation
        if conversation is None or conversation.order is None:
            return ActionResult.failure("No order is attached to this conversation")
        if action not in self._state.available_actions():
            return ActionResult.failure(f"Action '{action}' is not available")
        if self._action_in_flight:
            return ActionResult.failure("Another action is in progress")

        self._action_in_flight = True
        try:
            await self._api.order_action(conversation.order.id, action)
        except AppError as exc:
            logger.warning("Order action %s on %s failed: %s", action, conversation.order.id, exc.detail)
            self._set_error(exc.detail)
            return ActionResult.failure(exc.detail)
        finally:
            self._action_in_flight = False

        logger.info("Order %s: %s confirmed, reloading", conversation.order.id, action)
        if self._mounted:
            await self._load(preserve=True)
        return ActionResult.success()

    def _bind_channels(self) -> None:
        assert self._resources is not None
        cid = self._conversation_id
        conversation_handle = self._binder.bind(
            self._cfg.conversation_channel(cid),
            {
                ChannelEvent.NEW_MESSAGE: self._on_new_message,
                ChannelEvent.STATUS_UPDATED: self._on_status_updated,
                ChannelEvent.CONVERSATION_DELETED: self._on_conversation_deleted,
            },
        )
        self._resources.enter_context(conversation_handle)
        self._presence_channel = self._binder.bind(
            self._cfg.presence_channel(cid),
            {ChannelEvent.TYPING: self._on_typing},
        )
        self._resources.enter_context(self._presence_channel)

    def _on_new_message(self, data: dict[str, Any]) -> None:
        if not self._mounted:
            return
        try:
            message = MessagePayload.model_validate(data).to_entity()
        except PayloadError:
            logger.warning("Dropping malformed new-message payload: %r", data)
            return
        if message.conversation_id != self._conversation_id:
            logger.warning(
                "Message %s for conversation %s delivered to %s",
                message.id, message.conversation_id, self._conversation_id,
            )
            return

        self._presence.on_remote_message(message.sender_id)
        if not self._pagination.append_incoming(message):
            logger.debug("Duplicate push of message %s ignored", message.id)
            return
        if message.sender_id != self._viewer_id:
            self._spawn(self._mark_read(), "mark-read")
        self._publish()

    def _on_status_updated(self, data: dict[str, Any]) -> None:
        if not self._mounted:
            return
        try:
            event = StatusChangedPayload.model_validate(data).to_event()
        except PayloadError:
            logger.warning("Dropping malformed status payload: %r", data)
            return
        if self._state.apply_pushed_status(event) and self._state.is_closed:
            self._presence.stop()
            self._presence.clear_remote()

    def _on_conversation_deleted(self, data: dict[str, Any]) -> None:
        if not self._mounted:
            return
        try:
            event = ConversationDeletedPayload.model_validate(data).to_event()
        except PayloadError:
            logger.warning("Dropping malformed delete payload: %r", data)
            return
        if event.conversation_id != self._conversation_id:
            return
        if self._state.mark_removed():
            self._presence.stop()
            self._presence.clear_remote()

    def _on_typing(self, data: dict[str, Any]) -> None:
        if not self._mounted:
            return
        try:
            signal = TypingPayload.model_validate(data).to_event()
        except PayloadError:
            logger.debug("Dropping malformed typing payload: %r", data)
            return
        self._presence.on_remote_signal(signal.user_id, signal.is_typing)

    def _emit_typing(self, is_typing: bool) -> None:
        payload = {"userId": self._viewer_id, "isTyping": is_typing}
        channel = self._presence_channel
        if channel is not None and channel.trigger(ChannelEvent.TYPING, payload):
            return
        if self._mounted:
            self._spawn(self._send_typing_status(is_typing), "typing-status")

    async def _send_typing_status(self, is_typing: bool) -> None:
        try:
            await self._api.send_typing_status(self._conversation_id, is_typing)
        except AppError as exc:
            logger.debug("Typing status not delivered: %s", exc.detail)

    async def _mark_read(self) -> None:
        try:
            await self._api.mark_as_read(self._conversation_id)
        except AppError as exc:
            logger.warning("mark_as_read for %s failed: %s", self._conversation_id, exc.detail)

    def _on_feedback_due(self, conversation: Conversation) -> None:
        self._spawn(self._open_feedback(conversation), "feedback-prompt")

    async def _open_feedback(self, conversation: Conversation) -> None:
        if await self._feedback.open(conversation) is not None:
            self._publish()

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> None:
        task = asyncio.get_running_loop().create_task(
            coro, name=f"{name}-{self._conversation_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task %s failed", task.get_name(), exc_info=exc)

    def _cancel_tasks(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    def _set_error(self, detail: str) -> None:
        self._error = detail
        self._publish()

    def _build_view(self) -> ConversationView:
        conversation = self._state.conversation
        names = {p.user_id: p.name for p in conversation.participants} if conversation else {}
        order = conversation.order if conversation else None
        return ConversationView(
            conversation_id=self._conversation_id,
            messages=self._store.messages,
            status=self._state.status,
            order_status=order.status if order else None,
            can_send=self._state.can_send,
            typing_label=self._presence.label(names),
            available_actions=self._state.available_actions(),
            feedback_prompt=self._feedback.pending,
            error=self._error,
            loading=self._loading,
            degraded=self._binder.degraded,
            has_older=self._pagination.has_older,
        )

    def _publish(self) -> None:
        view = self._build_view()
        if view == self._view:
            return
        self._view = view
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception:
                logger.exception("View listener failed")
