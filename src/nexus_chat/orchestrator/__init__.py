"""Conversation orchestrator for the CRM chat assistant.

This module provides:
- ConversationOrchestrator: command surface (send, stop, sessions)
- TurnExecutor: the round loop of a turn
- Turn state machine types
- Session store protocol and in-memory implementation
- Streaming buffer and ephemeral render state
"""

from nexus_chat.orchestrator.executor import TurnExecutor, format_stream_error
from nexus_chat.orchestrator.orchestrator import ConversationOrchestrator
from nexus_chat.orchestrator.prompts import build_system_prompt
from nexus_chat.orchestrator.render_state import EphemeralRenderState, SessionMirror
from nexus_chat.orchestrator.session import (
    ChatSession,
    InMemorySessionStore,
    SessionStore,
    generate_title,
    needs_resume,
)
from nexus_chat.orchestrator.streaming import StreamBuffer
from nexus_chat.orchestrator.types import (
    InvalidTransitionError,
    TurnContext,
    TurnInProgressError,
    TurnMachine,
    TurnState,
    transition,
)

__all__ = [
    "ConversationOrchestrator",
    "TurnExecutor",
    "format_stream_error",
    "build_system_prompt",
    "EphemeralRenderState",
    "SessionMirror",
    "ChatSession",
    "InMemorySessionStore",
    "SessionStore",
    "generate_title",
    "needs_resume",
    "StreamBuffer",
    "InvalidTransitionError",
    "TurnContext",
    "TurnInProgressError",
    "TurnMachine",
    "TurnState",
    "transition",
]
