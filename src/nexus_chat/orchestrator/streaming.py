"""Streaming buffer with flush throttling.

The first text chunk of a round is flushed at once so the reply appears with
minimal latency. After that, flushes are spaced at least ``flush_interval``
seconds apart, and whatever is still pending is flushed when the stream ends.
"""

import time
from typing import Callable


class StreamBuffer:
    """Accumulates streamed text and decides when to publish it.

    Args:
        flush_interval: Minimum seconds between two throttled flushes.
        clock: Monotonic time source in seconds. Injectable for tests.
    """

    def __init__(
        self, flush_interval: float, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.flush_interval = flush_interval
        self._clock = clock
        self.content = ""
        self.last_flush_time: float | None = None
        self.pending = False
        self.flush_count = 0

    def append(self, text: str) -> bool:
        """Add a text chunk.

        Returns:
            True if the caller should flush now.
        """
        self.content += text
        now = self._clock()
        if self.last_flush_time is None or now - self.last_flush_time >= self.flush_interval:
            self._mark_flushed(now)
            return True
        self.pending = True
        return False

    def finish(self) -> bool:
        """Close the round.

        Returns:
            True if buffered content has not been flushed yet.
        """
        if not self.pending:
            return False
        self._mark_flushed(self._clock())
        return True

    def _mark_flushed(self, now: float) -> None:
        self.last_flush_time = now
        self.pending = False
        self.flush_count += 1
