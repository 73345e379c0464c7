"""Core types for the conversation orchestrator.

This module defines:
- TurnState: State machine states of one user turn
- TurnMachine: Immutable snapshot of {state, session, cancellation token}
- transition: Pure function advancing a TurnMachine along the allowed edges
- TurnContext: Mutable working state of one turn, passed through the steps
- Error classes raised by the orchestrator
"""

from dataclasses import dataclass, field, replace
from enum import Enum

from nexus_chat.llm_client.cancellation import CancellationToken
from nexus_chat.llm_client.types import ChatMessage, ToolCall
from nexus_chat.telemetry import TraceContext


class TurnState(str, Enum):
    """State machine states for a conversation turn."""

    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    TOOLS_PENDING = "tools_pending"
    EXECUTING = "executing"
    FINALIZING = "finalizing"
    ABORTED = "aborted"
    ERRORED = "errored"


ALLOWED_TRANSITIONS: dict[TurnState, frozenset[TurnState]] = {
    TurnState.IDLE: frozenset({TurnState.SENDING}),
    TurnState.SENDING: frozenset({TurnState.STREAMING, TurnState.ABORTED, TurnState.ERRORED}),
    TurnState.STREAMING: frozenset(
        {TurnState.TOOLS_PENDING, TurnState.FINALIZING, TurnState.ABORTED, TurnState.ERRORED}
    ),
    TurnState.TOOLS_PENDING: frozenset({TurnState.EXECUTING, TurnState.ABORTED}),
    TurnState.EXECUTING: frozenset(
        {TurnState.STREAMING, TurnState.FINALIZING, TurnState.ABORTED, TurnState.ERRORED}
    ),
    TurnState.FINALIZING: frozenset({TurnState.IDLE}),
    TurnState.ABORTED: frozenset({TurnState.IDLE}),
    TurnState.ERRORED: frozenset({TurnState.IDLE}),
}

TERMINAL_STATES = frozenset({TurnState.FINALIZING, TurnState.ABORTED, TurnState.ERRORED})


class InvalidTransitionError(Exception):
    """Raised when a turn is moved along an edge the state machine does not allow."""

    def __init__(self, current: TurnState, target: TurnState) -> None:
        super().__init__(f"Invalid turn transition: {current.value} -> {target.value}")
        self.current = current
        self.target = target


class TurnInProgressError(Exception):
    """Raised when a second turn is started for a session that already has one."""

    def __init__(self, session_id: str) -> None:
        super().__init__("A response is already in progress for this conversation.")
        self.session_id = session_id


@dataclass(frozen=True)
class TurnMachine:
    """State of one in-flight turn, held as a single unit.

    Attributes:
        session_id: Session the turn belongs to.
        token: Cancellation token for this turn.
        trace: Trace context correlating every log line of the turn.
        state: Current state machine state.
        iteration: Number of completed tool rounds.
    """

    session_id: str
    token: CancellationToken = field(default_factory=CancellationToken)
    trace: TraceContext = field(default_factory=TraceContext.new_trace)
    state: TurnState = TurnState.IDLE
    iteration: int = 0

    @property
    def is_active(self) -> bool:
        return self.state not in (TurnState.IDLE, *TERMINAL_STATES)


def can_transition(current: TurnState, target: TurnState) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def transition(machine: TurnMachine, target: TurnState) -> TurnMachine:
    """Return a copy of the machine moved to ``target``.

    Args:
        machine: Current machine snapshot.
        target: State to move to.

    Returns:
        New TurnMachine in the target state.

    Raises:
        InvalidTransitionError: If the edge is not in ALLOWED_TRANSITIONS.
    """
    if not can_transition(machine.state, target):
        raise InvalidTransitionError(machine.state, target)
    return replace(machine, state=target)


def next_iteration(machine: TurnMachine) -> TurnMachine:
    """Return a copy of the machine with the tool-round counter incremented."""
    return replace(machine, iteration=machine.iteration + 1)


@dataclass
class TurnContext:
    """Mutable working state of one turn, passed through every step.

    Attributes:
        session_id: Session the turn writes to.
        user_id: Owner of the session and of the CRM data.
        machine: Current state machine snapshot.
        history: Working copy of the message history.
        title_source: First user message when this is the session's first
            turn; the title is derived from it when the turn ends.
        round_message: Finalized assistant message of the current round.
        pending_tool_calls: Tool calls collected in the current round.
        iteration_limit_reached: Whether the loop stopped at the round bound.
        error_message: Provider or stream failure, if the turn errored.
    """

    session_id: str
    user_id: str
    machine: TurnMachine
    history: list[ChatMessage] = field(default_factory=list)
    title_source: str | None = None
    round_message: ChatMessage | None = None
    pending_tool_calls: list[ToolCall] = field(default_factory=list)
    iteration_limit_reached: bool = False
    error_message: str | None = None

    @property
    def state(self) -> TurnState:
        return self.machine.state

    @property
    def cancelled(self) -> bool:
        return self.machine.token.cancelled
