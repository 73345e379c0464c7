"""Semantic event constants for structured logging.

All log events should use these constants rather than magic strings to ensure
consistency and enable reliable querying and analysis.
"""

# Turn lifecycle events
TURN_STARTED = "turn_started"
TURN_COMPLETED = "turn_completed"
TURN_ABORTED = "turn_aborted"
TURN_FAILED = "turn_failed"
TURN_REJECTED = "turn_rejected"
STATE_TRANSITION = "state_transition"
ROUND_STARTED = "round_started"
STREAM_FLUSHED = "stream_flushed"
ITERATION_LIMIT_REACHED = "iteration_limit_reached"
ORCHESTRATOR_FATAL_ERROR = "orchestrator_fatal_error"

# Model stream client events
MODEL_CALL_STARTED = "model_call_started"
MODEL_CALL_COMPLETED = "model_call_completed"
MODEL_CALL_ERROR = "model_call_error"
PROVIDER_REGISTERED = "provider_registered"

# Tool execution events
TOOL_CALL_STARTED = "tool_call_started"
TOOL_CALL_COMPLETED = "tool_call_completed"
TOOL_CALL_FAILED = "tool_call_failed"
TOOL_ARGUMENTS_INVALID = "tool_arguments_invalid"

# Session store events
SESSION_CREATED = "session_created"
SESSION_PERSISTED = "session_persisted"
SESSION_DELETED = "session_deleted"
STORE_UPDATE_SUPPRESSED = "store_update_suppressed"
