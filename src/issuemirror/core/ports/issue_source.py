"""
Issue Source Port - Abstract interface for the remote issue tracker.

Adapters implement two page primitives; pagination, de-duplication and the
streaming generators are shared here so every transport (REST Link headers,
GraphQL cursors) behaves identically above this line.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Hashable, Iterator, Optional, TypeVar

from ..cancellation import CancellationToken
from ..domain.entities import Comment, Issue, Page
from ..domain.value_objects import RepositoryRef
from ..exceptions import (
    AuthenticationError,
    CancelledError,
    NotFoundError,
    RateLimitError,
    SyncError,
    TransientError,
)


T = TypeVar("T")

# Fetches one page given the continuation cursor of the previous page.
PageFetcher = Callable[[Optional[str]], Page[T]]

# Wraps a page fetch, e.g. to retry it: call(fetch_page, cursor) -> Page
PageCall = Callable[[PageFetcher, Optional[str]], Page]

logger = logging.getLogger("IssueSource")


def paginate(
    fetch_page: PageFetcher,
    call: Optional[PageCall] = None,
) -> Iterator[Page]:
    """
    Walk a paginated collection until it is exhausted.

    Paging stops when a page has no continuation cursor OR when a page comes
    back empty, whichever happens first.

    Args:
        fetch_page: Fetches the page after ``cursor`` (None for the first page)
        call: Optional wrapper around each page fetch (retry policy)

    Yields:
        Pages in server order, numbered from 1
    """
    cursor: Optional[str] = None
    number = 1

    while True:
        page = call(fetch_page, cursor) if call else fetch_page(cursor)
        page = replace(page, number=number)
        yield page

        if not page.has_more:
            return

        if page.next_cursor == cursor:
            logger.warning(f"Continuation cursor did not advance after page {number}, stopping")
            return

        cursor = page.next_cursor
        number += 1


def unique_pages(
    pages: Iterator[Page[T]],
    key: Callable[[T], Hashable],
) -> Iterator[Page[T]]:
    """Drop items already yielded by an earlier page of the same walk."""
    seen: set = set()
    for page in pages:
        fresh = []
        for item in page.items:
            item_key = key(item)
            if item_key in seen:
                continue
            seen.add(item_key)
            fresh.append(item)
        yield replace(page, items=fresh)


class IssueSourcePort(ABC):
    """
    Abstract interface for fetching issues and comments from a remote tracker.

    Implementations perform no retries: every failure is raised once, already
    classified into the error taxonomy, and the orchestrator decides.
    """

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the transport name (e.g., 'GitHub REST')."""
        ...

    # -------------------------------------------------------------------------
    # Page Primitives
    # -------------------------------------------------------------------------

    @abstractmethod
    def fetch_issue_page(
        self,
        repository: RepositoryRef,
        since: Optional[datetime],
        cursor: Optional[str],
        cancel_token: Optional[CancellationToken] = None,
    ) -> Page[Issue]:
        """
        Fetch one page of issues.

        Args:
            repository: Repository to read
            since: Only issues updated at or after this instant (server-side
                filter); None for the whole collection
            cursor: Continuation from the previous page, None for the first
            cancel_token: Aborts the in-flight request when cancelled

        Raises:
            AuthenticationError, NotFoundError, TransientError, CancelledError
        """
        ...

    @abstractmethod
    def fetch_comment_page(
        self,
        repository: RepositoryRef,
        issue_number: int,
        cursor: Optional[str],
        cancel_token: Optional[CancellationToken] = None,
    ) -> Page[Comment]:
        """Fetch one page of comments for an issue."""
        ...

    # -------------------------------------------------------------------------
    # Streaming
    # -------------------------------------------------------------------------

    def issue_pages(
        self,
        repository: RepositoryRef,
        since: Optional[datetime] = None,
        cancel_token: Optional[CancellationToken] = None,
        call: Optional[PageCall] = None,
    ) -> Iterator[Page[Issue]]:
        """Walk all issue pages, de-duplicated by issue number."""
        def fetch_page(cursor: Optional[str]) -> Page[Issue]:
            return self.fetch_issue_page(repository, since, cursor, cancel_token)

        return unique_pages(paginate(fetch_page, call), key=lambda issue: issue.number)

    def comment_pages(
        self,
        repository: RepositoryRef,
        issue_number: int,
        cancel_token: Optional[CancellationToken] = None,
        call: Optional[PageCall] = None,
    ) -> Iterator[Page[Comment]]:
        """Walk all comment pages of one issue, de-duplicated by comment id."""
        def fetch_page(cursor: Optional[str]) -> Page[Comment]:
            return self.fetch_comment_page(repository, issue_number, cursor, cancel_token)

        return unique_pages(paginate(fetch_page, call), key=lambda comment: comment.id)

    def fetch_issues(
        self,
        repository: RepositoryRef,
        since: Optional[datetime] = None,
        cancel_token: Optional[CancellationToken] = None,
        call: Optional[PageCall] = None,
    ) -> Iterator[Issue]:
        """Stream every issue (full fetch when ``since`` is None)."""
        for page in self.issue_pages(repository, since, cancel_token, call):
            yield from page.items

    def fetch_comments(
        self,
        repository: RepositoryRef,
        issue_number: int,
        cancel_token: Optional[CancellationToken] = None,
        call: Optional[PageCall] = None,
    ) -> Iterator[Comment]:
        """Stream every comment of one issue."""
        for page in self.comment_pages(repository, issue_number, cancel_token, call):
            yield from page.items

    def close(self) -> None:
        """Release network resources."""
        pass

    def __enter__(self) -> "IssueSourcePort":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


__all__ = [
    "IssueSourcePort",
    "PageFetcher",
    "PageCall",
    "paginate",
    "unique_pages",
    "SyncError",
    "AuthenticationError",
    "NotFoundError",
    "TransientError",
    "RateLimitError",
    "CancelledError",
]
