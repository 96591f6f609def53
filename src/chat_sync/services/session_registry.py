"""Bridge-side registry of mounted chat screens, one per (user, conversation)."""
from __future__ import annotations

import logging
from typing import Callable

from chat_sync.application.dto.principal import Principal
from chat_sync.application.exceptions import NotFoundError
from chat_sync.application.ports.channel import ChannelProvider
from chat_sync.application.ports.chat_api import ChatApi
from chat_sync.application.ports.clock import Scheduler
from chat_sync.config import Settings, settings as default_settings
from chat_sync.domain.value_objects.ids import ConversationId, UserId
from chat_sync.services.active_conversation import ActiveConversation
from chat_sync.services.feedback import FeedbackLedger
from chat_sync.services.sync_orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)

ApiFactory = Callable[[Principal], ChatApi]


class SessionRegistry:
    def __init__(
        self,
        api_factory: ApiFactory,
        provider: ChannelProvider,
        *,
        scheduler: Scheduler | None = None,
        config: Settings | None = None,
    ) -> None:
        self._api_factory = api_factory
        self._provider = provider
        self._scheduler = scheduler
        self._config = config or default_settings
        self._sessions: dict[tuple[UserId, ConversationId], SyncOrchestrator] = {}
        self._active: dict[UserId, ActiveConversation] = {}
        self._ledgers: dict[UserId, FeedbackLedger] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def active_conversation(self, user_id: UserId) -> ActiveConversation:
        return self._active.setdefault(user_id, ActiveConversation())

    def feedback_ledger(self, user_id: UserId) -> FeedbackLedger:
        return self._ledgers.setdefault(user_id, FeedbackLedger())

    async def open(
        self,
        principal: Principal,
        conversation_id: ConversationId,
        *,
        preserve: bool = False,
    ) -> tuple[SyncOrchestrator, bool]:
        """Mount the conversation for ``principal``, or refresh it if already open.

        A session whose earlier mount failed is mounted again.
        """
        key = (principal.user_id, conversation_id)
        orchestrator = self._sessions.get(key)
        if orchestrator is not None:
            if orchestrator.live:
                result = await orchestrator.refresh()
                return orchestrator, result.ok
            ok = await orchestrator.retry()
            logger.info(
                "User %s remounted conversation %s (ok=%s)",
                principal.user_id, conversation_id, ok,
            )
            return orchestrator, ok

        orchestrator = SyncOrchestrator(
            self._api_factory(principal),
            self._provider,
            conversation_id=conversation_id,
            viewer_id=principal.user_id,
            active_conversation=self.active_conversation(principal.user_id),
            feedback_ledger=self.feedback_ledger(principal.user_id),
            scheduler=self._scheduler,
            config=self._config,
        )
        self._sessions[key] = orchestrator
        ok = await orchestrator.mount(preserve=preserve)
        logger.info(
            "User %s opened conversation %s (ok=%s)",
            principal.user_id, conversation_id, ok,
        )
        return orchestrator, ok

    def is_open(self, principal: Principal, conversation_id: ConversationId) -> bool:
        return (principal.user_id, conversation_id) in self._sessions

    def get(self, principal: Principal, conversation_id: ConversationId) -> SyncOrchestrator:
        orchestrator = self._sessions.get((principal.user_id, conversation_id))
        if orchestrator is None:
            raise NotFoundError(f"Conversation {conversation_id} is not open")
        return orchestrator

    def close(self, principal: Principal, conversation_id: ConversationId) -> bool:
        orchestrator = self._sessions.pop((principal.user_id, conversation_id), None)
        if orchestrator is None:
            return False
        orchestrator.unmount()
        return True

    def close_all(self) -> None:
        for orchestrator in self._sessions.values():
            orchestrator.unmount()
        self._sessions.clear()
