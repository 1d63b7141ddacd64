"""
Domain Entities - Records mirrored from the remote issue tracker.

Issues and comments are plain immutable records: the local store is a
read-only mirror, so nothing in the domain mutates them after decoding.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Generic, Optional, TypeVar


T = TypeVar("T")


class SyncMode(Enum):
    """How much of the remote collection a pass covers."""

    FULL = "full"
    INCREMENTAL = "incremental"


class SyncPhase(Enum):
    """Orchestrator state machine."""

    IDLE = "idle"
    FETCHING_ISSUES = "fetching_issues"
    RECONCILING_ISSUES = "reconciling_issues"
    FETCHING_COMMENTS = "fetching_comments"
    COMMITTING = "committing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SyncStatus(Enum):
    """Terminal outcome of a synchronization pass."""

    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Issue:
    """An issue as last reported by the remote API."""

    number: int
    title: str
    state: str
    author: str
    created_at: datetime
    updated_at: datetime
    body: str = ""
    comment_count: int = 0
    labels: tuple[str, ...] = ()
    assignees: tuple[str, ...] = ()


@dataclass(frozen=True)
class Comment:
    """A comment belonging to exactly one issue."""

    id: int
    issue_number: int
    author: str
    created_at: datetime
    updated_at: datetime
    body: str = ""


@dataclass(frozen=True)
class Page(Generic[T]):
    """
    One decoded page of a remote collection.

    ``next_cursor`` is opaque to everything but the adapter that produced it:
    a Link-header URL for REST, an ``endCursor`` for GraphQL.
    """

    items: list[T] = field(default_factory=list)
    next_cursor: Optional[str] = None
    total_count: Optional[int] = None
    number: int = 1
    # Records the server sent, before adapter-side filtering (pull requests)
    size: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return (self.size if self.size is not None else len(self.items)) == 0

    @property
    def has_more(self) -> bool:
        # Either a missing continuation or an empty page ends paging.
        return self.next_cursor is not None and not self.is_empty
