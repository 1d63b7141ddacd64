"""
Issue Store Port - Abstract interface for the local mirror.

The store has no knowledge of the network. Writes are idempotent and atomic
per record; a whole pass is not one transaction.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Iterable, Optional

from ..domain.entities import Comment, Issue
from ..domain.value_objects import RepositoryRef
from ..exceptions import StorageCorruptionError, StorageError, SyncInProgressError


class IssueStorePort(ABC):
    """
    Abstract interface for the persistent issue/comment mirror.
    """

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    @abstractmethod
    def upsert_issue(self, repository: RepositoryRef, issue: Issue) -> None:
        """Insert, or replace every mutable field of, one issue."""
        ...

    @abstractmethod
    def upsert_comment(
        self,
        repository: RepositoryRef,
        issue_number: int,
        comment: Comment,
    ) -> None:
        """Insert, or replace, one comment keyed by its id."""
        ...

    @abstractmethod
    def replace_issue_set(
        self,
        repository: RepositoryRef,
        issue_numbers: Iterable[int],
    ) -> int:
        """
        Delete every stored issue whose number is not in ``issue_numbers``.

        Comments of deleted issues go with them. Only valid with the COMPLETE
        remote set from a full fetch.

        Returns:
            Number of issues deleted
        """
        ...

    @abstractmethod
    def replace_comment_set(
        self,
        repository: RepositoryRef,
        issue_number: int,
        comment_ids: Iterable[int],
    ) -> int:
        """
        Delete comments of one issue whose id is not in ``comment_ids``.

        Returns:
            Number of comments deleted
        """
        ...

    @abstractmethod
    def set_watermark(self, repository: RepositoryRef, timestamp: datetime) -> datetime:
        """
        Advance the repository watermark.

        Never moves it backwards; returns the watermark now stored.
        """
        ...

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    @abstractmethod
    def get_watermark(self, repository: RepositoryRef) -> Optional[datetime]:
        """Get the last successful sync start time, None if never synced."""
        ...

    @abstractmethod
    def comment_count(self, repository: RepositoryRef, issue_number: int) -> int:
        """Count comments stored for one issue."""
        ...

    @abstractmethod
    def issue_count(self, repository: RepositoryRef) -> int:
        """Count issues stored for a repository."""
        ...

    @abstractmethod
    def get_issue(self, repository: RepositoryRef, number: int) -> Optional[Issue]:
        ...

    @abstractmethod
    def list_issues(self, repository: RepositoryRef) -> list[Issue]:
        """All issues, most recently updated first."""
        ...

    @abstractmethod
    def list_comments(self, repository: RepositoryRef, issue_number: int) -> list[Comment]:
        """Comments of one issue in chronological order."""
        ...

    # -------------------------------------------------------------------------
    # Coordination
    # -------------------------------------------------------------------------

    @abstractmethod
    def sync_lock(self, repository: RepositoryRef) -> AbstractContextManager:
        """
        Claim the repository for one synchronization pass.

        Raises:
            SyncInProgressError: If another pass holds the claim
        """
        ...

    def close(self) -> None:
        """Release database resources."""
        pass


__all__ = [
    "IssueStorePort",
    "StorageError",
    "StorageCorruptionError",
    "SyncInProgressError",
]
