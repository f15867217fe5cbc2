"""Cooperative cancellation for orchestration runs."""

import threading


class OrchestrationCancelled(InterruptedError):
    """Raised at a suspension point once the run's token has fired."""


class CancellationToken:
    """Thread-safe flag checked before and after every planner/executor call.

    ``cancel()`` is safe to call from a signal handler or another thread.
    """

    def __init__(self):
        self._event = threading.Event()
        self.reason = "Operation cancelled by user"

    def cancel(self, reason: str | None = None) -> None:
        if reason:
            self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Block up to ``timeout`` seconds; True if cancelled meanwhile."""
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OrchestrationCancelled(self.reason)
