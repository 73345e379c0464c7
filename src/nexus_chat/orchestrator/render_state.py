"""Ephemeral render state and session store reconciliation.

The render state is the orchestrator's local, fast-moving view of a session
while a turn streams. It runs ahead of the session store and is never written
to it. The mirror holds what the store last pushed, with sessions that have a
turn in flight frozen at their pre-turn value so a stale push cannot replace
content that is still streaming.
"""

import asyncio
from dataclasses import replace
from typing import Callable

from nexus_chat.llm_client.types import ChatMessage
from nexus_chat.orchestrator.session import ChatSession
from nexus_chat.telemetry import STORE_UPDATE_SUPPRESSED, get_logger

log = get_logger(__name__)


class EphemeralRenderState:
    """Per-session message snapshots that exist only while a turn is shown.

    Args:
        on_change: Called with the session id whenever a snapshot changes.
    """

    def __init__(self, on_change: Callable[[str], None] | None = None) -> None:
        self._snapshots: dict[str, list[ChatMessage]] = {}
        self._clear_timers: dict[str, asyncio.TimerHandle] = {}
        self._on_change = on_change

    def publish(self, session_id: str, messages: list[ChatMessage]) -> None:
        """Replace the snapshot for a session and cancel any pending clear."""
        self._cancel_timer(session_id)
        self._snapshots[session_id] = list(messages)
        self._changed(session_id)

    def get(self, session_id: str) -> list[ChatMessage] | None:
        snapshot = self._snapshots.get(session_id)
        return list(snapshot) if snapshot is not None else None

    def has(self, session_id: str) -> bool:
        return session_id in self._snapshots

    def clear(self, session_id: str) -> None:
        """Drop the snapshot immediately."""
        self._cancel_timer(session_id)
        if self._snapshots.pop(session_id, None) is not None:
            self._changed(session_id)

    def clear_later(self, session_id: str, delay: float) -> None:
        """Drop the snapshot after ``delay`` seconds.

        A publish or clear for the same session before then cancels the timer.
        """
        self._cancel_timer(session_id)
        if delay <= 0:
            self.clear(session_id)
            return
        loop = asyncio.get_running_loop()
        self._clear_timers[session_id] = loop.call_later(delay, self._expire, session_id)

    def close(self) -> None:
        """Cancel every pending clear timer."""
        for handle in self._clear_timers.values():
            handle.cancel()
        self._clear_timers.clear()

    def _expire(self, session_id: str) -> None:
        self._clear_timers.pop(session_id, None)
        self.clear(session_id)

    def _cancel_timer(self, session_id: str) -> None:
        handle = self._clear_timers.pop(session_id, None)
        if handle is not None:
            handle.cancel()

    def _changed(self, session_id: str) -> None:
        if self._on_change is not None:
            self._on_change(session_id)


class SessionMirror:
    """Reconciled local copy of the session list pushed by the store.

    ``suppress`` freezes a session at its current value. While frozen, store
    pushes for that session are replaced with the frozen value; pushes for
    other sessions pass through. ``release`` unfreezes it and falls back to
    the latest value the store pushed.
    """

    def __init__(self) -> None:
        self._latest: list[ChatSession] = []
        self._frozen: dict[str, ChatSession | None] = {}
        self.sessions: list[ChatSession] = []

    def get(self, session_id: str) -> ChatSession | None:
        return next((s for s in self.sessions if s.id == session_id), None)

    def is_suppressed(self, session_id: str) -> bool:
        return session_id in self._frozen

    def suppress(self, session_id: str) -> None:
        """Freeze a session at its current value (absent if it has none yet)."""
        if session_id not in self._frozen:
            current = self.get(session_id)
            self._frozen[session_id] = current.copy() if current else None

    def release(self, session_id: str) -> None:
        self._frozen.pop(session_id, None)
        self._rebuild()

    def apply_local(self, session_id: str, messages: list[ChatMessage]) -> None:
        """Record messages this process just wrote, ahead of the store's push."""
        current = next((s for s in self._latest if s.id == session_id), None)
        if current is None:
            self._latest = [ChatSession(id=session_id, messages=list(messages)), *self._latest]
        else:
            updated = replace(current, messages=list(messages))
            self._latest = [updated if s.id == session_id else s for s in self._latest]
        self._rebuild()

    def apply_store_update(self, sessions: list[ChatSession]) -> list[ChatSession]:
        """Take a store push and return the reconciled session list."""
        self._latest = sessions
        for session in sessions:
            if session.id in self._frozen:
                log.debug(STORE_UPDATE_SUPPRESSED, session_id=session.id)
        self._rebuild()
        return self.sessions

    def _rebuild(self) -> None:
        view = []
        for session in self._latest:
            if session.id not in self._frozen:
                view.append(session)
                continue
            frozen = self._frozen[session.id]
            if frozen is not None:
                view.append(frozen)
        self.sessions = view
