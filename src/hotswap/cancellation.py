"""Cooperative cancellation for update runs.

A token is created per run and passed explicitly to every operation that can
suspend. Cancellation never interrupts a write in progress; it only stops the
next chunk or the next operation from starting.
"""

import threading

from hotswap.domain.errors import CancelledError


class CancellationToken:
    """Thread-safe cancellation flag.

    Transfers that run in worker threads (FTP, hashing, file copies) poll the
    same token as the coordinating task, hence ``threading.Event`` rather than
    ``asyncio.Event``.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason = "Update cancelled"

    def cancel(self, reason: str | None = None) -> None:
        """Request cancellation. Idempotent."""
        if reason and not self._event.is_set():
            self._reason = reason
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def raise_if_cancelled(self) -> None:
        """Raise CancelledError if cancellation was requested."""
        if self._event.is_set():
            raise CancelledError(self._reason)
