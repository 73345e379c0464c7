"""Chat sessions and the session store.

This module provides the ChatSession record, the SessionStore protocol the
orchestrator depends on, and an in-memory store with push subscriptions.
Subscribers are notified asynchronously on the event loop, the same way a
remote document store delivers its snapshots.
"""

import asyncio
import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Callable, Protocol

from nexus_chat.config import settings
from nexus_chat.llm_client.types import ChatMessage
from nexus_chat.telemetry import (
    SESSION_CREATED,
    SESSION_DELETED,
    SESSION_PERSISTED,
    get_logger,
)

log = get_logger(__name__)

SessionListener = Callable[[list["ChatSession"]], None]
Unsubscribe = Callable[[], None]


@dataclass
class ChatSession:
    """A single chat conversation.

    Attributes:
        id: Unique identifier for this session.
        title: Display title, set from the first user message.
        messages: Ordered chat history.
        created_at: UTC timestamp when the session was created.
        updated_at: UTC timestamp of the last write.
    """

    id: str
    title: str = "New Chat"
    messages: list[ChatMessage] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def copy(self) -> "ChatSession":
        """Return a copy that shares no mutable state with this session."""
        return replace(self, messages=[m.model_copy(deep=True) for m in self.messages])


class SessionStore(Protocol):
    """Durable storage of a user's chat sessions."""

    def subscribe(self, user_id: str, on_change: SessionListener) -> Unsubscribe: ...

    async def create(self, user_id: str) -> str: ...

    async def update(
        self,
        user_id: str,
        session_id: str,
        *,
        messages: list[ChatMessage] | None = None,
        title: str | None = None,
    ) -> None: ...

    async def delete(self, user_id: str, session_id: str) -> None: ...

    async def get(self, user_id: str, session_id: str) -> ChatSession | None: ...

    def generate_title(self, first_message: str) -> str: ...


def generate_title(first_message: str, max_length: int) -> str:
    """Build a session title from the first user message.

    Whitespace runs collapse to single spaces; titles longer than
    ``max_length`` are cut and end with "...".
    """
    cleaned = " ".join(first_message.split())
    if len(cleaned) > max_length:
        return cleaned[:max_length] + "..."
    return cleaned


def needs_resume(messages: list[ChatMessage]) -> bool:
    """Check whether a persisted history stopped after a tool round.

    Tool results are saved before the follow-up model call. A history whose
    last message is a tool message therefore has no assistant reply yet.
    """
    return bool(messages) and messages[-1].role == "tool"


class InMemorySessionStore:
    """In-memory SessionStore with asynchronous push subscriptions.

    Subscribers receive the user's non-empty sessions, newest first, after
    every change and once right after subscribing. Messages are copied on the
    way in and out.
    """

    def __init__(self, list_limit: int | None = None, title_max_length: int | None = None) -> None:
        """Initialize an empty store.

        Args:
            list_limit: Sessions pushed to subscribers. Defaults to settings.
            title_max_length: Title truncation length. Defaults to settings.
        """
        self.list_limit = list_limit or settings.chat_session_list_limit
        self.title_max_length = title_max_length or settings.chat_title_max_length
        self._sessions: dict[str, dict[str, ChatSession]] = {}
        self._listeners: dict[str, list[SessionListener]] = {}

    def subscribe(self, user_id: str, on_change: SessionListener) -> Unsubscribe:
        """Subscribe to a user's session list.

        Must be called from within a running event loop.

        Returns:
            Callable that removes the subscription.
        """
        listeners = self._listeners.setdefault(user_id, [])
        listeners.append(on_change)
        asyncio.get_running_loop().call_soon(self._deliver, user_id, on_change)

        def unsubscribe() -> None:
            if on_change in listeners:
                listeners.remove(on_change)

        return unsubscribe

    async def create(self, user_id: str) -> str:
        session_id = str(uuid.uuid4())
        self._sessions.setdefault(user_id, {})[session_id] = ChatSession(id=session_id)
        log.info(SESSION_CREATED, user_id=user_id, session_id=session_id)
        self._notify(user_id)
        return session_id

    async def update(
        self,
        user_id: str,
        session_id: str,
        *,
        messages: list[ChatMessage] | None = None,
        title: str | None = None,
    ) -> None:
        """Replace a session's messages and/or title.

        Raises:
            ValueError: If the session does not exist or a message is still
                marked as streaming.
        """
        session = self._sessions.get(user_id, {}).get(session_id)
        if session is None:
            raise ValueError(f"Session {session_id} not found")
        if messages is not None:
            if any(m.is_streaming for m in messages):
                raise ValueError("Refusing to persist a message that is still streaming")
            session.messages = [m.model_copy(deep=True) for m in messages]
        if title is not None:
            session.title = title
        session.updated_at = datetime.now(UTC)
        log.debug(
            SESSION_PERSISTED,
            session_id=session_id,
            message_count=len(session.messages),
            title_set=title is not None,
        )
        self._notify(user_id)

    async def delete(self, user_id: str, session_id: str) -> None:
        if self._sessions.get(user_id, {}).pop(session_id, None) is not None:
            log.info(SESSION_DELETED, user_id=user_id, session_id=session_id)
            self._notify(user_id)

    async def get(self, user_id: str, session_id: str) -> ChatSession | None:
        """Read one session directly, including empty ones and those outside the list limit."""
        session = self._sessions.get(user_id, {}).get(session_id)
        return session.copy() if session else None

    def generate_title(self, first_message: str) -> str:
        return generate_title(first_message, self.title_max_length)

    def _snapshot(self, user_id: str) -> list[ChatSession]:
        sessions = sorted(
            (s for s in self._sessions.get(user_id, {}).values() if s.messages),
            key=lambda s: s.updated_at,
            reverse=True,
        )
        return [s.copy() for s in sessions[: self.list_limit]]

    def _deliver(self, user_id: str, listener: SessionListener) -> None:
        if listener in self._listeners.get(user_id, []):
            listener(self._snapshot(user_id))

    def _notify(self, user_id: str) -> None:
        loop = asyncio.get_running_loop()
        for listener in list(self._listeners.get(user_id, [])):
            loop.call_soon(self._deliver, user_id, listener)
