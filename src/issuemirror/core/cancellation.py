"""
Cancellation - Cooperative cancellation signal shared by caller and engine.
"""

import threading
from typing import Optional

from .exceptions import CancelledError


class CancellationToken:
    """
    A one-way, thread-safe cancel flag.

    The caller calls ``cancel()``; the orchestrator and the HTTP client poll
    ``is_cancelled`` or block on ``wait()`` so they wake up as soon as the
    flag is set.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "Cancelled by user") -> None:
        with self._lock:
            if self._event.is_set():
                return
            self.reason = reason
            self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block up to ``timeout`` seconds. Returns True if cancelled."""
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancelledError(self.reason or "Operation cancelled")
