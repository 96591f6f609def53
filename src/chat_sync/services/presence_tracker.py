"""Typing presence: local emission debouncing and remote expiry."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Mapping

from chat_sync.application.ports.clock import Scheduler, TimerHandle
from chat_sync.domain.entities.typing_state import TypingState
from chat_sync.domain.value_objects.enums import TypingPhase
from chat_sync.domain.value_objects.ids import UserId

logger = logging.getLogger(__name__)

TypingEmitter = Callable[[bool], None]


@dataclass(slots=True)
class _RemoteEntry:
    last_signal_at: float
    phase: TypingPhase
    timer: TimerHandle | None = None


class PresenceTracker:
    """Tracks who is typing and throttles our own typing signals.

    Local side: idle -> active on the first non-empty input (typing=True is
    emitted once), refreshed every ``refresh_interval`` while active, back to
    idle on send, on empty text or after ``idle_timeout`` without input
    (typing=False is emitted once).

    Remote side, per user: a True signal makes the entry active; after one
    refresh interval without a new signal it is expiring; at
    ``expiry_window`` after the last signal it is dropped. A False signal or
    a message from that user drops it immediately.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        emit: TypingEmitter,
        *,
        self_id: UserId,
        refresh_interval: float = 2.0,
        idle_timeout: float = 3.0,
        expiry_window: float = 5.0,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        if not refresh_interval < expiry_window:
            raise ValueError("refresh_interval must be shorter than expiry_window")
        self._scheduler = scheduler
        self._emit = emit
        self._self_id = self_id
        self._refresh_interval = refresh_interval
        self._idle_timeout = idle_timeout
        self._expiry_window = expiry_window
        self._on_change = on_change or (lambda: None)

        self._local_phase = TypingPhase.IDLE
        self._refresh_timer: TimerHandle | None = None
        self._idle_timer: TimerHandle | None = None
        self._remote: dict[UserId, _RemoteEntry] = {}

    # -- local -------------------------------------------------------------

    @property
    def local_phase(self) -> TypingPhase:
        return self._local_phase

    def on_local_input(self, text: str) -> None:
        if not text.strip():
            self.stop()
            return

        if self._local_phase is TypingPhase.IDLE:
            self._local_phase = TypingPhase.ACTIVE
            self._safe_emit(True)
            self._arm_refresh()

        if self._idle_timer is not None:
            self._idle_timer.cancel()
        self._idle_timer = self._scheduler.call_later(self._idle_timeout, self._on_idle)

    def on_local_send(self) -> None:
        self.stop()

    def stop(self) -> None:
        """Cancel local timers and emit typing=False if a signal is active."""
        was_active = self._local_phase is not TypingPhase.IDLE
        self._cancel_local_timers()
        self._local_phase = TypingPhase.IDLE
        if was_active:
            self._safe_emit(False)

    def _arm_refresh(self) -> None:
        self._refresh_timer = self._scheduler.call_later(self._refresh_interval, self._on_refresh)

    def _on_refresh(self) -> None:
        self._refresh_timer = None
        if self._local_phase is not TypingPhase.ACTIVE:
            return
        self._safe_emit(True)
        self._arm_refresh()

    def _on_idle(self) -> None:
        self._idle_timer = None
        logger.debug("Local typing went idle")
        self.stop()

    def _cancel_local_timers(self) -> None:
        if self._refresh_timer is not None:
            self._refresh_timer.cancel()
            self._refresh_timer = None
        if self._idle_timer is not None:
            self._idle_timer.cancel()
            self._idle_timer = None

    def _safe_emit(self, is_typing: bool) -> None:
        try:
            self._emit(is_typing)
        except Exception:
            logger.exception("Typing emitter failed (is_typing=%s)", is_typing)

    # -- remote ------------------------------------------------------------

    def on_remote_signal(self, user_id: UserId, is_typing: bool) -> None:
        if user_id == self._self_id:
            return
        if not is_typing:
            self._drop_remote(user_id)
            return

        entry = self._remote.get(user_id)
        changed = entry is None
        if entry is not None and entry.timer is not None:
            entry.timer.cancel()
        entry = _RemoteEntry(
            last_signal_at=self._scheduler.monotonic(),
            phase=TypingPhase.ACTIVE,
        )
        entry.timer = self._scheduler.call_later(
            self._refresh_interval, lambda: self._on_remote_stale(user_id),
        )
        self._remote[user_id] = entry
        if changed:
            self._on_change()

    def on_remote_message(self, user_id: UserId) -> None:
        self._drop_remote(user_id)

    def clear_remote(self) -> None:
        if not self._remote:
            return
        for entry in self._remote.values():
            if entry.timer is not None:
                entry.timer.cancel()
        self._remote.clear()
        self._on_change()

    def _on_remote_stale(self, user_id: UserId) -> None:
        entry = self._remote.get(user_id)
        if entry is None:
            return
        entry.phase = TypingPhase.EXPIRING
        remaining = self._expiry_window - self._refresh_interval
        entry.timer = self._scheduler.call_later(remaining, lambda: self._on_remote_expired(user_id))

    def _on_remote_expired(self, user_id: UserId) -> None:
        entry = self._remote.pop(user_id, None)
        if entry is None:
            return
        logger.debug("Typing signal from user %s expired", user_id)
        self._on_change()

    def _drop_remote(self, user_id: UserId) -> None:
        entry = self._remote.pop(user_id, None)
        if entry is None:
            return
        if entry.timer is not None:
            entry.timer.cancel()
        self._on_change()

    # -- queries -----------------------------------------------------------

    def remote_state(self, user_id: UserId) -> TypingState:
        entry = self._remote.get(user_id)
        if entry is None:
            return TypingState(user_id=user_id, last_signal_at=0.0, is_typing=False)
        return TypingState(
            user_id=user_id,
            last_signal_at=entry.last_signal_at,
            is_typing=True,
            phase=entry.phase,
        )

    def typing_users(self) -> list[UserId]:
        return sorted(self._remote)

    def label(self, names: Mapping[UserId, str]) -> str:
        users = [names.get(uid) or f"User {uid}" for uid in self.typing_users()]
        if not users:
            return ""
        if len(users) == 1:
            return f"{users[0]} is typing..."
        if len(users) == 2:
            return f"{users[0]} and {users[1]} are typing..."
        return "Several people are typing..."

    def close(self) -> None:
        """Cancel every timer without emitting anything."""
        self._cancel_local_timers()
        self._local_phase = TypingPhase.IDLE
        for entry in self._remote.values():
            if entry.timer is not None:
                entry.timer.cancel()
        self._remote.clear()
