"""High-level conversation orchestrator API.

ConversationOrchestrator is the command surface a presentation layer drives:
send a message, stop the reply, clear the error banner, and manage sessions.
It owns the per-session turn bookkeeping, the ephemeral render state and the
reconciled view of the session store; the round loop itself lives in
``orchestrator.executor``.
"""

import time
from dataclasses import replace
from typing import Callable

from nexus_chat.config import AppConfig, settings
from nexus_chat.llm_client.base import ModelStreamClient
from nexus_chat.llm_client.cancellation import CancellationToken
from nexus_chat.llm_client.registry import ProviderRegistry, default_provider_registry
from nexus_chat.llm_client.types import ChatMessage, ConfigurationError
from nexus_chat.orchestrator.executor import (
    TurnExecutor,
    format_stream_error,
    persistable,
)
from nexus_chat.orchestrator.render_state import EphemeralRenderState, SessionMirror
from nexus_chat.orchestrator.session import (
    ChatSession,
    SessionStore,
    Unsubscribe,
    needs_resume,
)
from nexus_chat.orchestrator.types import (
    TurnContext,
    TurnInProgressError,
    TurnMachine,
    TurnState,
    transition,
)
from nexus_chat.telemetry import (
    ORCHESTRATOR_FATAL_ERROR,
    TURN_ABORTED,
    TURN_COMPLETED,
    TURN_FAILED,
    TURN_REJECTED,
    TURN_STARTED,
    get_logger,
)
from nexus_chat.tools.crm_models import CRMData
from nexus_chat.tools.executor import ToolExecutionLayer

log = get_logger(__name__)

Listener = Callable[[], None]

SESSION_NOT_FOUND_MESSAGE = "This conversation could not be found."


class ConversationOrchestrator:
    """Drives chat turns for one user.

    Args:
        user_id: Owner of the sessions and the CRM data.
        store: Session store the turns persist to.
        tool_layer: Tool execution layer with the CRM tools registered.
        providers: Provider registry used by ``configure_provider``. Defaults
            to the built-in providers.
        client: Model stream client to use right away, bypassing the registry.
        crm_data: Initial CRM snapshot.
        config: Settings. Defaults to the global settings.
        clock: Monotonic time source in seconds, used for flush throttling.
    """

    def __init__(
        self,
        user_id: str,
        store: SessionStore,
        tool_layer: ToolExecutionLayer,
        providers: ProviderRegistry | None = None,
        client: ModelStreamClient | None = None,
        crm_data: CRMData | None = None,
        config: AppConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.user_id = user_id
        self.store = store
        self.tool_layer = tool_layer
        self.providers = providers or default_provider_registry()
        self.client = client
        self.crm_data = crm_data or CRMData()
        self.config = config or settings
        self.clock = clock

        self.current_session_id: str | None = None
        self.error: str | None = None

        self.render_state = EphemeralRenderState(on_change=lambda _session_id: self._notify())
        self.mirror = SessionMirror()
        self._turns: dict[str, TurnContext] = {}
        self._pending_new: CancellationToken | None = None
        self._listeners: list[Listener] = []
        self._unsubscribe: Unsubscribe | None = None

    # Lifecycle

    def start(self) -> None:
        """Subscribe to the session store. Must run inside the event loop."""
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(self.user_id, self._on_store_update)

    def close(self) -> None:
        """Unsubscribe from the store and cancel every turn in flight."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for ctx in list(self._turns.values()):
            ctx.machine.token.cancel("shutdown")
        self.render_state.close()

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register a callback invoked whenever the visible state changes.

        Returns:
            Callable that removes the listener.
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # Configuration

    def configure_provider(self, name: str | None = None, api_key: str | None = None) -> bool:
        """Build the model client from the provider registry.

        Args:
            name: Provider name. Defaults to ``llm_provider`` from settings.
            api_key: Provider credential. Defaults to the key in settings.

        Returns:
            True if a client is configured, False if the configuration error
            was recorded in ``error``.
        """
        name = name or self.config.llm_provider
        if api_key is None:
            api_key = self.config.provider_api_key(name)
        try:
            self.client = self.providers.create(name, api_key, self.config)
        except ConfigurationError as e:
            self.client = None
            self._set_error(str(e))
            return False
        return True

    def set_crm_data(self, data: CRMData) -> None:
        self.crm_data = data

    # Views

    @property
    def sessions(self) -> list[ChatSession]:
        return list(self.mirror.sessions)

    @property
    def is_streaming(self) -> bool:
        """Whether the current session has a turn in flight."""
        if self.current_session_id is None:
            pending = self._pending_new
            return pending is not None and not pending.cancelled
        ctx = self._turns.get(self.current_session_id)
        return ctx is not None and not ctx.cancelled

    def visible_messages(self, session_id: str | None = None) -> list[ChatMessage]:
        """Messages to show for a session, the current one by default.

        The render state wins while it exists; otherwise the reconciled store
        view is used.
        """
        session_id = session_id or self.current_session_id
        if session_id is None:
            return []
        snapshot = self.render_state.get(session_id)
        if snapshot is not None:
            return snapshot
        session = self.mirror.get(session_id)
        return list(session.messages) if session else []

    # Commands

    def new_chat(self) -> None:
        """Show an empty chat. The session is created on the first message."""
        self.current_session_id = None
        self.error = None
        self._notify()

    async def select_session(self, session_id: str) -> bool:
        """Show an existing session.

        Returns:
            True if the session was selected, False if it does not exist. The
            miss is reported through ``error``.
        """
        if await self._load_history(session_id) is None:
            self._set_error(SESSION_NOT_FOUND_MESSAGE)
            return False
        self.current_session_id = session_id
        self.error = None
        self._notify()
        return True

    async def delete_session(self, session_id: str) -> None:
        """Delete a session, stopping its turn first if one is running."""
        if session_id in self._turns:
            self.stop_streaming(session_id)
        await self.store.delete(self.user_id, session_id)
        self.render_state.clear(session_id)
        if self.current_session_id == session_id:
            self.current_session_id = None
        self._notify()

    def clear_error(self) -> None:
        self.error = None
        self._notify()

    def stop_streaming(self, session_id: str | None = None) -> None:
        """Cancel the turn of a session, the current one by default.

        The render state is cleared at once; the round loop notices the
        cancellation at its next suspension point.
        """
        session_id = session_id or self.current_session_id
        if session_id is None:
            # First message of a new chat, its session is still being created
            if self._pending_new is not None:
                self._pending_new.cancel("user")
                self._notify()
            return
        ctx = self._turns.get(session_id)
        if ctx is None:
            return
        ctx.machine.token.cancel("user")
        self.render_state.clear(ctx.session_id)
        self.mirror.release(ctx.session_id)
        self._notify()

    async def send_message(self, content: str) -> TurnContext | None:
        """Run one user turn to completion.

        Configuration problems, an unknown session and a second turn for a
        busy session are reported through ``error``; nothing is written in
        those cases.

        Args:
            content: The user's message.

        Returns:
            The finished turn context, or None if the turn was rejected.
        """
        if not content or not content.strip():
            return None
        if self.client is None:
            self._set_error(
                "Please configure your API key in settings to use the AI assistant."
            )
            return None

        session_id = self.current_session_id
        previous: list[ChatMessage] = []
        if session_id is not None:
            history = await self._load_history(session_id)
            if history is None:
                self._set_error(SESSION_NOT_FOUND_MESSAGE)
                return None
            previous = history
        try:
            self._ensure_idle(session_id)
        except TurnInProgressError as e:
            log.warning(TURN_REJECTED, session_id=e.session_id, reason="turn_in_progress")
            self._set_error(str(e))
            return None

        token = CancellationToken()
        if session_id is None:
            self._pending_new = token
            try:
                session_id = await self.store.create(self.user_id)
            finally:
                self._pending_new = None
            self.current_session_id = session_id

        user_message = ChatMessage(role="user", content=content.strip())
        ctx = TurnContext(
            session_id=session_id,
            user_id=self.user_id,
            machine=TurnMachine(session_id=session_id, token=token),
            history=[*persistable(previous), user_message],
            title_source=user_message.content if not previous else None,
        )
        return await self._run_turn(ctx, self.client, persist_first=True)

    async def resume(self) -> TurnContext | None:
        """Continue the current session after an interrupted tool round.

        A history that ends with a tool message has results the model never
        answered. The round loop is re-entered without a new user message.

        Returns:
            The finished turn context, or None if there is nothing to resume.
        """
        session_id = self.current_session_id
        history = await self._load_history(session_id) if session_id else None
        if session_id is None or history is None or not needs_resume(history):
            return None
        if self.client is None:
            self._set_error(
                "Please configure your API key in settings to use the AI assistant."
            )
            return None
        try:
            self._ensure_idle(session_id)
        except TurnInProgressError as e:
            log.warning(TURN_REJECTED, session_id=e.session_id, reason="turn_in_progress")
            self._set_error(str(e))
            return None

        ctx = TurnContext(
            session_id=session_id,
            user_id=self.user_id,
            machine=TurnMachine(session_id=session_id),
            history=persistable(history),
        )
        return await self._run_turn(ctx, self.client, persist_first=False)

    # Internals

    async def _load_history(self, session_id: str) -> list[ChatMessage] | None:
        """Return a session's latest messages, or None if the store has no such session.

        The render state holds a finished turn until the store push lands.
        Sessions the mirror has not seen yet, or that fall outside the pushed
        list, are read from the store.
        """
        snapshot = self.render_state.get(session_id)
        if snapshot is not None:
            return snapshot
        session = self.mirror.get(session_id)
        if session is None:
            session = await self.store.get(self.user_id, session_id)
        return list(session.messages) if session is not None else None

    def _ensure_idle(self, session_id: str | None) -> None:
        if session_id is None:
            if self._pending_new is not None:
                raise TurnInProgressError("new")
        elif session_id in self._turns:
            raise TurnInProgressError(session_id)

    async def _run_turn(
        self, ctx: TurnContext, client: ModelStreamClient, persist_first: bool
    ) -> TurnContext:
        session_id = ctx.session_id
        self._turns[session_id] = ctx
        self.mirror.suppress(session_id)
        self.error = None
        ctx.machine = transition(ctx.machine, TurnState.SENDING)
        log.info(
            TURN_STARTED,
            session_id=session_id,
            message_count=len(ctx.history),
            resumed=not persist_first,
            trace_id=ctx.machine.trace.trace_id,
        )

        executor = TurnExecutor(
            client=client,
            tool_layer=self.tool_layer,
            store=self.store,
            render_state=self.render_state,
            get_crm_data=lambda: self.crm_data,
            max_iterations=self.config.chat_max_iterations,
            flush_interval=self.config.chat_flush_interval_ms / 1000,
            clock=self.clock,
        )
        try:
            self.render_state.publish(session_id, ctx.history)
            if persist_first:
                await self.store.update(self.user_id, session_id, messages=ctx.history)
            await executor.run(ctx)
        except Exception as e:
            log.critical(
                ORCHESTRATOR_FATAL_ERROR,
                session_id=session_id,
                state=ctx.state.value,
                error=str(e),
                trace_id=ctx.machine.trace.trace_id,
                exc_info=True,
            )
            # Unexpected failures leave the table; they end the turn as a stream error
            ctx.machine = replace(ctx.machine, state=TurnState.ERRORED)
            ctx.error_message = str(e) or type(e).__name__
            await self._save_fatal_error(ctx)
        finally:
            self._end_turn(ctx)
        return ctx

    async def _save_fatal_error(self, ctx: TurnContext) -> None:
        ctx.history.append(
            ChatMessage(role="assistant", content=format_stream_error(ctx.error_message or ""))
        )
        try:
            await self.store.update(
                self.user_id, ctx.session_id, messages=persistable(ctx.history)
            )
        except Exception:
            log.error(
                "fatal_error_persist_failed",
                session_id=ctx.session_id,
                trace_id=ctx.machine.trace.trace_id,
                exc_info=True,
            )
        else:
            if not ctx.cancelled:
                self.render_state.publish(ctx.session_id, ctx.history)

    def _end_turn(self, ctx: TurnContext) -> None:
        session_id = ctx.session_id
        state = ctx.state
        log_fields = {
            "session_id": session_id,
            "iterations": ctx.machine.iteration,
            "message_count": len(ctx.history),
            "trace_id": ctx.machine.trace.trace_id,
        }
        if state == TurnState.ABORTED:
            log.info(TURN_ABORTED, reason=ctx.machine.token.reason, **log_fields)
        elif state == TurnState.ERRORED:
            log.warning(TURN_FAILED, error=ctx.error_message, **log_fields)
        else:
            log.info(
                TURN_COMPLETED,
                iteration_limit_reached=ctx.iteration_limit_reached,
                **log_fields,
            )

        if state in (TurnState.FINALIZING, TurnState.ABORTED, TurnState.ERRORED):
            ctx.machine = transition(ctx.machine, TurnState.IDLE)
        else:
            # Cancelled by the event loop mid-step
            ctx.machine = replace(ctx.machine, state=TurnState.IDLE)

        self._turns.pop(session_id, None)
        if state == TurnState.ABORTED or ctx.cancelled:
            self.mirror.release(session_id)
            self.render_state.clear(session_id)
        else:
            self.mirror.apply_local(session_id, persistable(ctx.history))
            self.mirror.release(session_id)
            self.render_state.clear_later(session_id, self.config.chat_clear_grace_ms / 1000)
        self._notify()

    def _on_store_update(self, sessions: list[ChatSession]) -> None:
        self.mirror.apply_store_update(sessions)
        self._notify()

    def _set_error(self, message: str) -> None:
        self.error = message
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()
