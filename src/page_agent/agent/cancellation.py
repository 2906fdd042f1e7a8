"""Cooperative cancellation shared between a run and its controller."""

from __future__ import annotations

import threading

from .errors import RunCancelled


class CancellationToken:
    """Flag polled by a run at every suspend point.

    Cancelling never interrupts a page operation already in flight; the run
    notices at its next check.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelled()

    def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds`` unless cancelled first, then raise."""

        if seconds > 0 and self._event.wait(seconds):
            raise RunCancelled()
        self.raise_if_cancelled()
