"""Cooperative cancellation checked at stage boundaries."""

import threading


class CancellationToken:
    """
    Flag set from a signal handler or another thread.

    The pipeline only reads it between stages; a running compile is never
    interrupted through the token.
    """

    def __init__(self):
        self._event = threading.Event()
        self.reason = ""

    def cancel(self, reason: str = "cancelled by user") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()
