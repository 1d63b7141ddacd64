"""Shared fixtures: a temporary SQLite mirror and a scripted issue source."""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import pytest

from issuemirror.adapters.storage import SqliteIssueStore
from issuemirror.core.cancellation import CancellationToken
from issuemirror.core.domain import Comment, Issue, Page, RepositoryRef
from issuemirror.core.ports.issue_source import IssueSourcePort


EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


def build_issue(number: int, comment_count: int = 0, **overrides) -> Issue:
    fields = dict(
        number=number,
        title=f"Issue {number}",
        state="open",
        author="octocat",
        created_at=EPOCH,
        updated_at=EPOCH + timedelta(minutes=number),
        body=f"Body of issue {number}",
        comment_count=comment_count,
    )
    fields.update(overrides)
    return Issue(**fields)


def build_comment(comment_id: int, issue_number: int, **overrides) -> Comment:
    fields = dict(
        id=comment_id,
        issue_number=issue_number,
        author="hubot",
        created_at=EPOCH + timedelta(seconds=comment_id),
        updated_at=EPOCH + timedelta(seconds=comment_id),
        body=f"Comment {comment_id}",
    )
    fields.update(overrides)
    return Comment(**fields)


class FakeIssueSource(IssueSourcePort):
    """
    Issue source serving pre-scripted pages.

    Cursors are page indexes as strings. ``failures`` maps
    ("issues", page_index) or ("comments", issue_number) to a list of
    exceptions raised, one per call, before the page is served.
    """

    def __init__(
        self,
        issue_pages: Optional[list[list[Issue]]] = None,
        comment_pages: Optional[dict[int, list[list[Comment]]]] = None,
        failures: Optional[dict[tuple, list[Exception]]] = None,
        on_issue_page: Optional[Callable[[int], None]] = None,
    ):
        self.issue_page_data = issue_pages or [[]]
        self.comment_page_data = comment_pages or {}
        self.failures = failures or {}
        self.on_issue_page = on_issue_page
        self.issue_requests: list[tuple] = []
        self.comment_requests: list[tuple] = []
        self.closed = False

    @property
    def name(self) -> str:
        return "Fake"

    def fetch_issue_page(self, repository, since, cursor, cancel_token=None) -> Page[Issue]:
        index = int(cursor or 0)
        self.issue_requests.append((since, cursor))
        self._fail(("issues", index))
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        if self.on_issue_page is not None:
            self.on_issue_page(index)

        items = self.issue_page_data[index]
        has_next = index + 1 < len(self.issue_page_data)
        return Page(
            items=list(items),
            next_cursor=str(index + 1) if has_next else None,
            total_count=sum(len(page) for page in self.issue_page_data),
        )

    def fetch_comment_page(self, repository, issue_number, cursor, cancel_token=None) -> Page[Comment]:
        index = int(cursor or 0)
        self.comment_requests.append((issue_number, cursor))
        self._fail(("comments", issue_number))
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        pages = self.comment_page_data.get(issue_number, [[]])
        has_next = index + 1 < len(pages)
        return Page(items=list(pages[index]), next_cursor=str(index + 1) if has_next else None)

    def close(self) -> None:
        self.closed = True

    def _fail(self, key: tuple) -> None:
        pending = self.failures.get(key)
        if pending:
            raise pending.pop(0)


@pytest.fixture
def repo():
    return RepositoryRef("acme", "widgets")


@pytest.fixture
def store(tmp_path):
    store = SqliteIssueStore(tmp_path / "mirror.db")
    yield store
    store.close()


@pytest.fixture
def make_issue():
    return build_issue


@pytest.fixture
def make_comment():
    return build_comment


@pytest.fixture
def fake_source():
    """Factory for FakeIssueSource instances."""
    return FakeIssueSource


@pytest.fixture
def cancel_token():
    return CancellationToken()
