"""
Progress Channel - Hand progress from a background pass to the caller.

The orchestrator publishes SyncProgress events on its EventBus; a
ProgressChannel subscribed to that bus queues them so a UI thread can consume
them at its own pace. Cancellation flows the other way through the handle's
CancellationToken.
"""

import queue
import threading
from typing import TYPE_CHECKING, Iterator, Optional

from ...core.cancellation import CancellationToken
from ...core.domain.events import SyncProgress
from ...core.domain.value_objects import RepositoryRef

if TYPE_CHECKING:
    from .orchestrator import SyncResult


_CLOSED = object()


class ProgressChannel:
    """
    Thread-safe, single-consumer queue of SyncProgress events.

    Iterating blocks until the producer closes the channel.
    """

    def __init__(self):
        self._queue: queue.Queue = queue.Queue()
        self._closed = threading.Event()

    def publish(self, event: SyncProgress) -> None:
        if not self._closed.is_set():
            self._queue.put(event)

    def close(self) -> None:
        if not self._closed.is_set():
            self._closed.set()
            self._queue.put(_CLOSED)

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def get(self, timeout: Optional[float] = None) -> Optional[SyncProgress]:
        """
        Next event, or None when the channel is closed and drained.

        Raises:
            queue.Empty: If nothing arrived within ``timeout``
        """
        item = self._queue.get(timeout=timeout)
        if item is _CLOSED:
            # Keep the marker for any later reader
            self._queue.put(_CLOSED)
            return None
        return item

    def drain(self) -> list[SyncProgress]:
        """Everything queued right now, without blocking."""
        events = []
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return events
            if item is _CLOSED:
                self._queue.put(_CLOSED)
                return events
            events.append(item)

    def __iter__(self) -> Iterator[SyncProgress]:
        while True:
            event = self.get()
            if event is None:
                return
            yield event


class SyncHandle:
    """A synchronization pass running on a background thread."""

    def __init__(
        self,
        repository: RepositoryRef,
        cancel_token: CancellationToken,
        events: ProgressChannel,
    ):
        self.repository = repository
        self.cancel_token = cancel_token
        self.events = events
        self._done = threading.Event()
        self._result: Optional["SyncResult"] = None
        self._error: Optional[BaseException] = None
        self._thread: Optional[threading.Thread] = None

    def cancel(self, reason: str = "Cancelled by user") -> None:
        self.cancel_token.cancel(reason)

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def result(self, timeout: Optional[float] = None) -> "SyncResult":
        """
        Wait for the pass to end.

        Raises:
            TimeoutError: If it is still running after ``timeout`` seconds
        """
        if not self._done.wait(timeout):
            raise TimeoutError(f"Sync of {self.repository} still running")
        if self._error is not None:
            raise self._error
        return self._result

    # Called by the orchestrator's worker thread
    def _finish(
        self,
        result: Optional["SyncResult"] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        self._result = result
        self._error = error
        self.events.close()
        self._done.set()
