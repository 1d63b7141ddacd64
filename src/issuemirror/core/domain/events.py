"""
Domain Events - Things that happened during a synchronization pass.

Events are immutable records of something that occurred.
They decouple the orchestrator from whoever renders progress.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import uuid4

from .value_objects import RepositoryRef
from .entities import SyncMode, SyncPhase


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def event_type(self) -> str:
        """Get the event type name."""
        return self.__class__.__name__


@dataclass(frozen=True)
class SyncStarted(DomainEvent):
    """Event: A synchronization pass started."""

    repository: Optional[RepositoryRef] = None
    mode: SyncMode = SyncMode.FULL
    since: Optional[datetime] = None


@dataclass(frozen=True)
class SyncPhaseChanged(DomainEvent):
    """Event: The orchestrator moved to another phase."""

    repository: Optional[RepositoryRef] = None
    previous: SyncPhase = SyncPhase.IDLE
    current: SyncPhase = SyncPhase.IDLE


@dataclass(frozen=True)
class SyncProgress(DomainEvent):
    """
    Event: Progress tick within a phase.

    ``fetched`` never decreases within one phase of one pass. In the issues
    phase it counts issues; in the comments phase it counts issue threads
    processed. ``total`` is set only when the remote reports it.
    """

    repository: Optional[RepositoryRef] = None
    phase: SyncPhase = SyncPhase.FETCHING_ISSUES
    fetched: int = 0
    total: Optional[int] = None
    page: int = 0
    issue_number: Optional[int] = None


@dataclass(frozen=True)
class SyncCompleted(DomainEvent):
    """Event: A pass finished successfully."""

    repository: Optional[RepositoryRef] = None
    mode: SyncMode = SyncMode.FULL
    issues_fetched: int = 0
    issues_removed: int = 0
    comments_fetched: int = 0
    watermark: Optional[datetime] = None


@dataclass(frozen=True)
class SyncFailed(DomainEvent):
    """Event: A pass ended in failure or was cancelled."""

    repository: Optional[RepositoryRef] = None
    error_kind: str = ""
    detail: str = ""
    cancelled: bool = False


class EventBus:
    """
    Simple event bus for publishing and subscribing to domain events.

    Handlers run synchronously on the publishing thread.
    """

    def __init__(self, keep_history: bool = True):
        self._handlers: dict[type, list[Callable]] = {}
        self._history: list[DomainEvent] = []
        self._keep_history = keep_history

    def subscribe(self, event_type: type, handler: Callable) -> None:
        """Subscribe a handler to an event type."""
        if event_type not in self._handlers:
            self._handlers[event_type] = []
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: type, handler: Callable) -> bool:
        """Remove a handler. Returns False if it was not subscribed."""
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    def publish(self, event: DomainEvent) -> None:
        """Publish an event to all subscribers."""
        if self._keep_history:
            self._history.append(event)

        # Call specific handlers
        for handler in list(self._handlers.get(type(event), [])):
            handler(event)

        # Call catch-all handlers
        for handler in list(self._handlers.get(DomainEvent, [])):
            handler(event)

    def get_history(self) -> list[DomainEvent]:
        """Get all published events."""
        return self._history.copy()
