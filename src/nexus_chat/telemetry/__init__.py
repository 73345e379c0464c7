"""Telemetry module for structured logging and trace correlation.

This module provides:
- TraceContext for turn and tool-call correlation
- Structured logging via structlog
- Semantic event constants
"""

from nexus_chat.telemetry.events import (
    ITERATION_LIMIT_REACHED,
    MODEL_CALL_COMPLETED,
    MODEL_CALL_ERROR,
    MODEL_CALL_STARTED,
    ORCHESTRATOR_FATAL_ERROR,
    PROVIDER_REGISTERED,
    ROUND_STARTED,
    SESSION_CREATED,
    SESSION_DELETED,
    SESSION_PERSISTED,
    STATE_TRANSITION,
    STORE_UPDATE_SUPPRESSED,
    STREAM_FLUSHED,
    TOOL_ARGUMENTS_INVALID,
    TOOL_CALL_COMPLETED,
    TOOL_CALL_FAILED,
    TOOL_CALL_STARTED,
    TURN_ABORTED,
    TURN_COMPLETED,
    TURN_FAILED,
    TURN_REJECTED,
    TURN_STARTED,
)
from nexus_chat.telemetry.logger import configure_logging, get_logger
from nexus_chat.telemetry.trace import TraceContext

__all__ = [
    # Core exports
    "TraceContext",
    "get_logger",
    "configure_logging",
    # Event constants
    "TURN_STARTED",
    "TURN_COMPLETED",
    "TURN_ABORTED",
    "TURN_FAILED",
    "TURN_REJECTED",
    "STATE_TRANSITION",
    "ROUND_STARTED",
    "STREAM_FLUSHED",
    "ITERATION_LIMIT_REACHED",
    "ORCHESTRATOR_FATAL_ERROR",
    "MODEL_CALL_STARTED",
    "MODEL_CALL_COMPLETED",
    "MODEL_CALL_ERROR",
    "PROVIDER_REGISTERED",
    "TOOL_CALL_STARTED",
    "TOOL_CALL_COMPLETED",
    "TOOL_CALL_FAILED",
    "TOOL_ARGUMENTS_INVALID",
    "SESSION_CREATED",
    "SESSION_PERSISTED",
    "SESSION_DELETED",
    "STORE_UPDATE_SUPPRESSED",
]
