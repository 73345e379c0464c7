"""Cooperative cancellation for chat turns.

A token is created per turn and handed to the model stream client. Nothing is
interrupted preemptively: the round loop calls ``raise_if_cancelled`` at its
suspension points and the clients stop reading once ``cancelled`` is set.
"""


class TurnCancelledError(Exception):
    """Raised at a checkpoint after the turn's token was cancelled."""

    pass


class CancellationToken:
    """One-shot cancellation flag shared between a turn and its collaborators."""

    def __init__(self) -> None:
        self._cancelled = False
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "user") -> None:
        """Signal cancellation. Later calls keep the first reason."""
        if not self._cancelled:
            self.reason = reason
            self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise TurnCancelledError(self.reason or "cancelled")
