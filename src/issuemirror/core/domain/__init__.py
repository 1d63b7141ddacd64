"""
Domain - Entities, value objects and events of the issue mirror.
"""

from .value_objects import RepositoryRef
from .entities import Issue, Comment, Page, SyncMode, SyncPhase, SyncStatus
from .events import (
    DomainEvent,
    SyncStarted,
    SyncPhaseChanged,
    SyncProgress,
    SyncCompleted,
    SyncFailed,
    EventBus,
)

__all__ = [
    "RepositoryRef",
    "Issue",
    "Comment",
    "Page",
    "SyncMode",
    "SyncPhase",
    "SyncStatus",
    "DomainEvent",
    "SyncStarted",
    "SyncPhaseChanged",
    "SyncProgress",
    "SyncCompleted",
    "SyncFailed",
    "EventBus",
]
