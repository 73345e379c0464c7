"""Trace context for turn correlation.

Every user turn gets one trace; each model round and tool call inside the turn
gets its own span so log lines can be stitched back together.
"""

import uuid
from dataclasses import dataclass


@dataclass(frozen=True)
class TraceContext:
    """Lightweight, immutable trace context.

    Attributes:
        trace_id: Identifier shared by every event of one user turn.
        parent_span_id: Span that the next child span hangs off, if any.
    """

    trace_id: str
    parent_span_id: str | None = None

    @classmethod
    def new_trace(cls) -> "TraceContext":
        """Start a new trace with a generated trace_id and no parent span."""
        return cls(trace_id=str(uuid.uuid4()))

    def new_span(self) -> tuple["TraceContext", str]:
        """Create a child span within this trace.

        Returns:
            A tuple of (child context whose parent is the new span, new span_id).
        """
        span_id = str(uuid.uuid4())
        return TraceContext(trace_id=self.trace_id, parent_span_id=span_id), span_id
