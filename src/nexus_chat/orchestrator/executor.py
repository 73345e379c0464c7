"""Turn execution: the round loop of the conversation state machine.

One TurnExecutor drives one turn. Each non-terminal state has a step function
that does the work of that state and returns the next state:

    STREAMING      stream one model reply into the render state
    TOOLS_PENDING  hand the collected tool calls over for execution
    EXECUTING      run the tool calls in order, persist the tool round

The loop ends in FINALIZING, ABORTED or ERRORED; ``_finish`` then performs the
terminal write for that state.
"""

import time
from typing import Awaitable, Callable

from nexus_chat.config import settings
from nexus_chat.llm_client.base import ModelStreamClient
from nexus_chat.llm_client.cancellation import TurnCancelledError
from nexus_chat.llm_client.types import (
    ChatMessage,
    DoneChunk,
    ErrorChunk,
    StreamRequest,
    TextChunk,
    ToolCallChunk,
)
from nexus_chat.orchestrator.prompts import build_system_prompt
from nexus_chat.orchestrator.render_state import EphemeralRenderState
from nexus_chat.orchestrator.session import SessionStore
from nexus_chat.orchestrator.streaming import StreamBuffer
from nexus_chat.orchestrator.types import (
    TERMINAL_STATES,
    TurnContext,
    TurnState,
    next_iteration,
    transition,
)
from nexus_chat.telemetry import (
    ITERATION_LIMIT_REACHED,
    MODEL_CALL_ERROR,
    ROUND_STARTED,
    STATE_TRANSITION,
    STREAM_FLUSHED,
    get_logger,
)
from nexus_chat.tools.crm_models import CRMData
from nexus_chat.tools.executor import ToolExecutionLayer
from nexus_chat.tools.types import ToolContext

log = get_logger(__name__)

STREAM_ERROR_TEMPLATE = "I encountered an error: {error}. Please try again."

StepFunction = Callable[[TurnContext], Awaitable[TurnState]]


def format_stream_error(error: str) -> str:
    """Build the assistant message shown when a model round fails."""
    return STREAM_ERROR_TEMPLATE.format(error=error.rstrip(".") or "Unknown error")


def persistable(messages: list[ChatMessage]) -> list[ChatMessage]:
    """Return the messages with any streaming flag cleared."""
    return [
        m.model_copy(update={"is_streaming": False}) if m.is_streaming else m for m in messages
    ]


class TurnExecutor:
    """Runs the round loop of one turn.

    Args:
        client: Model stream client for this turn.
        tool_layer: Tool execution layer; its registry supplies the tool list.
        store: Session store the turn persists to.
        render_state: Ephemeral render state the turn publishes to.
        get_crm_data: Returns the current CRM snapshot.
        max_iterations: Maximum number of tool rounds. Defaults to settings.
        flush_interval: Minimum seconds between throttled flushes. Defaults
            to settings.
        clock: Monotonic time source in seconds.
    """

    def __init__(
        self,
        client: ModelStreamClient,
        tool_layer: ToolExecutionLayer,
        store: SessionStore,
        render_state: EphemeralRenderState,
        get_crm_data: Callable[[], CRMData],
        max_iterations: int | None = None,
        flush_interval: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.tool_layer = tool_layer
        self.store = store
        self.render_state = render_state
        self.get_crm_data = get_crm_data
        self.max_iterations = max_iterations or settings.chat_max_iterations
        if flush_interval is None:
            flush_interval = settings.chat_flush_interval_ms / 1000
        self.flush_interval = flush_interval
        self.clock = clock

    async def run(self, ctx: TurnContext) -> TurnContext:
        """Drive the turn from SENDING to a terminal state.

        Args:
            ctx: Turn context in the SENDING state, with the history to send.

        Returns:
            The context in FINALIZING, ABORTED or ERRORED.
        """
        step_functions: dict[TurnState, StepFunction] = {
            TurnState.STREAMING: self.step_streaming,
            TurnState.TOOLS_PENDING: self.step_tools_pending,
            TurnState.EXECUTING: self.step_executing,
        }

        self.advance(ctx, TurnState.ABORTED if ctx.cancelled else TurnState.STREAMING)
        while ctx.state not in TERMINAL_STATES:
            try:
                next_state = await step_functions[ctx.state](ctx)
            except TurnCancelledError:
                next_state = TurnState.ABORTED
            self.advance(ctx, next_state)

        await self._finish(ctx)
        return ctx

    def advance(self, ctx: TurnContext, target: TurnState) -> None:
        previous = ctx.state
        ctx.machine = transition(ctx.machine, target)
        log.debug(
            STATE_TRANSITION,
            from_state=previous.value,
            to_state=target.value,
            session_id=ctx.session_id,
            iteration=ctx.machine.iteration,
            trace_id=ctx.machine.trace.trace_id,
        )

    async def step_streaming(self, ctx: TurnContext) -> TurnState:
        """Stream one model reply.

        Returns:
            TOOLS_PENDING if the reply requested tools, FINALIZING if it was
            plain text, ABORTED on cancellation, ERRORED on a stream failure.
        """
        log.info(
            ROUND_STARTED,
            session_id=ctx.session_id,
            iteration=ctx.machine.iteration,
            message_count=len(ctx.history),
            trace_id=ctx.machine.trace.trace_id,
        )
        request = StreamRequest(
            messages=list(ctx.history),
            tools=self.tool_layer.registry.get_tool_definitions_for_llm(),
            system_prompt=build_system_prompt(self.get_crm_data()),
        )
        token = ctx.machine.token
        stream = self.client.stream(request, token)

        placeholder = ChatMessage(role="assistant", is_streaming=True)
        self._publish(ctx, [*ctx.history, placeholder])

        buffer = StreamBuffer(self.flush_interval, clock=self.clock)
        tool_calls = []
        try:
            async for chunk in stream:
                token.raise_if_cancelled()
                if isinstance(chunk, TextChunk):
                    if buffer.append(chunk.content):
                        self._flush(ctx, placeholder, buffer)
                elif isinstance(chunk, ToolCallChunk):
                    tool_calls.append(chunk.tool_call)
                elif isinstance(chunk, ErrorChunk):
                    ctx.error_message = chunk.error
                    return TurnState.ERRORED
                elif isinstance(chunk, DoneChunk):
                    break
        except TurnCancelledError:
            return TurnState.ABORTED
        except Exception as e:
            log.error(
                MODEL_CALL_ERROR,
                provider=getattr(self.client, "name", type(self.client).__name__),
                error=str(e),
                session_id=ctx.session_id,
                trace_id=ctx.machine.trace.trace_id,
                exc_info=True,
            )
            ctx.error_message = str(e) or type(e).__name__
            return TurnState.ERRORED
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        token.raise_if_cancelled()
        if buffer.finish():
            self._flush(ctx, placeholder, buffer)

        ctx.round_message = placeholder.model_copy(
            update={
                "content": buffer.content,
                "is_streaming": False,
                "tool_calls": tool_calls or None,
            }
        )
        if tool_calls:
            ctx.pending_tool_calls = tool_calls
            return TurnState.TOOLS_PENDING

        ctx.history.append(ctx.round_message)
        return TurnState.FINALIZING

    async def step_tools_pending(self, ctx: TurnContext) -> TurnState:
        ctx.machine.token.raise_if_cancelled()
        log.debug(
            "tool_calls_pending",
            session_id=ctx.session_id,
            tool_names=[call.name for call in ctx.pending_tool_calls],
            trace_id=ctx.machine.trace.trace_id,
        )
        return TurnState.EXECUTING

    async def step_executing(self, ctx: TurnContext) -> TurnState:
        """Run the round's tool calls in received order and persist the round.

        A tool call that has started always runs to completion; cancellation
        is observed before the next one starts. The calls share one private
        copy of the CRM data, so a record created by one call can be
        referenced by the next.

        Returns:
            STREAMING for the follow-up round, FINALIZING at the iteration
            bound, ABORTED on cancellation.
        """
        token = ctx.machine.token
        tool_context = ToolContext(
            user_id=ctx.user_id, data=self.get_crm_data().model_copy(deep=True)
        )
        results = []
        for call in ctx.pending_tool_calls:
            token.raise_if_cancelled()
            span_ctx, _ = ctx.machine.trace.new_span()
            result = await self.tool_layer.execute_tool(
                call.name,
                call.arguments,
                tool_context,
                trace_ctx=span_ctx,
                tool_call_id=call.id,
            )
            results.append(result)

        token.raise_if_cancelled()

        if ctx.round_message is not None:
            ctx.history.append(ctx.round_message)
        ctx.history.append(ChatMessage(role="tool", tool_results=results))
        ctx.round_message = None
        ctx.pending_tool_calls = []

        await self._persist(ctx)
        token.raise_if_cancelled()
        self._publish(ctx, ctx.history)

        ctx.machine = next_iteration(ctx.machine)
        if ctx.machine.iteration >= self.max_iterations:
            log.warning(
                ITERATION_LIMIT_REACHED,
                session_id=ctx.session_id,
                max_iterations=self.max_iterations,
                trace_id=ctx.machine.trace.trace_id,
            )
            ctx.iteration_limit_reached = True
            return TurnState.FINALIZING
        return TurnState.STREAMING

    async def _finish(self, ctx: TurnContext) -> None:
        if ctx.state == TurnState.ABORTED:
            return

        if ctx.state == TurnState.ERRORED:
            ctx.history.append(
                ChatMessage(
                    role="assistant",
                    content=format_stream_error(ctx.error_message or "Unknown error"),
                )
            )
            await self._persist(ctx)
        else:
            title = self.store.generate_title(ctx.title_source) if ctx.title_source else None
            await self._persist(ctx, title=title)
        self._publish(ctx, ctx.history)

    async def _persist(self, ctx: TurnContext, title: str | None = None) -> None:
        await self.store.update(
            ctx.user_id, ctx.session_id, messages=persistable(ctx.history), title=title
        )

    def _publish(self, ctx: TurnContext, messages: list[ChatMessage]) -> None:
        if not ctx.cancelled:
            self.render_state.publish(ctx.session_id, messages)

    def _flush(self, ctx: TurnContext, placeholder: ChatMessage, buffer: StreamBuffer) -> None:
        self._publish(
            ctx, [*ctx.history, placeholder.model_copy(update={"content": buffer.content})]
        )
        log.debug(
            STREAM_FLUSHED,
            session_id=ctx.session_id,
            content_length=len(buffer.content),
            flush_count=buffer.flush_count,
        )
