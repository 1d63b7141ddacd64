"""
GitHub REST Adapter - Implements IssueSourcePort over the REST API v3.

Pagination follows the ``rel="next"`` entry of the Link response header.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

from ...core.cancellation import CancellationToken
from ...core.domain.entities import Comment, Issue, Page
from ...core.domain.value_objects import RepositoryRef
from ...core.exceptions import TransientError
from ...core.ports.config_provider import SourceConfig
from ...core.ports.issue_source import IssueSourcePort
from .client import GitHubApiClient


def parse_timestamp(value: Optional[str]) -> datetime:
    """Parse GitHub's ISO-8601 timestamps (``2024-05-01T12:00:00Z``)."""
    if not value:
        return datetime.fromtimestamp(0, tz=timezone.utc)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime) -> str:
    """Render a timestamp the way GitHub's ``since`` filters expect it."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def login_of(user: Optional[dict]) -> str:
    # Deleted accounts come back as null
    return (user or {}).get("login") or "ghost"


@contextmanager
def malformed_records(source: str, record: str) -> Iterator[None]:
    """Report a record missing required fields as a TransientError."""
    try:
        yield
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise TransientError(f"Malformed {record} in response from {source}: {e!r}", cause=e)


class GitHubRestAdapter(IssueSourcePort):
    """
    GitHub REST implementation of the IssueSourcePort.

    Translates between GitHub's JSON and domain records.
    """

    def __init__(
        self,
        config: SourceConfig,
        client: Optional[GitHubApiClient] = None,
    ):
        """
        Initialize the REST adapter.

        Args:
            config: Source configuration
            client: Optional pre-built API client
        """
        self.config = config
        self.logger = logging.getLogger("GitHubRestAdapter")

        self._client = client or GitHubApiClient(
            token=config.token,
            base_url=config.api_url,
            timeout=config.timeout,
        )

    # -------------------------------------------------------------------------
    # IssueSourcePort Implementation - Properties
    # -------------------------------------------------------------------------

    @property
    def name(self) -> str:
        return "GitHub REST"

    # -------------------------------------------------------------------------
    # IssueSourcePort Implementation - Page Primitives
    # -------------------------------------------------------------------------

    def fetch_issue_page(
        self,
        repository: RepositoryRef,
        since: Optional[datetime],
        cursor: Optional[str],
        cancel_token: Optional[CancellationToken] = None,
    ) -> Page[Issue]:
        if cursor is None:
            endpoint = f"repos/{repository.full_name}/issues"
            params: Optional[dict[str, Any]] = {
                "state": self.config.issue_state,
                "per_page": self.config.per_page,
                "sort": "updated",
                "direction": "asc",
            }
            if since is not None:
                params["since"] = format_timestamp(since)
        else:
            # The next link already carries every query parameter
            endpoint, params = cursor, None

        response = self._client.get(endpoint, cancel_token, params=params)
        data = self._expect_list(self._client.decode(response), endpoint)

        with malformed_records(endpoint, "issue"):
            issues = [
                self._parse_issue(item)
                for item in data
                if "pull_request" not in item
            ]
        skipped = len(data) - len(issues)
        if skipped:
            self.logger.debug(f"Skipped {skipped} pull requests on {endpoint}")

        return Page(items=issues, next_cursor=self._next_link(response), size=len(data))

    def fetch_comment_page(
        self,
        repository: RepositoryRef,
        issue_number: int,
        cursor: Optional[str],
        cancel_token: Optional[CancellationToken] = None,
    ) -> Page[Comment]:
        if cursor is None:
            endpoint = f"repos/{repository.full_name}/issues/{issue_number}/comments"
            params: Optional[dict[str, Any]] = {"per_page": self.config.per_page}
        else:
            endpoint, params = cursor, None

        response = self._client.get(endpoint, cancel_token, params=params)
        data = self._expect_list(self._client.decode(response), endpoint)

        with malformed_records(endpoint, "comment"):
            comments = [self._parse_comment(item, issue_number) for item in data]
        return Page(items=comments, next_cursor=self._next_link(response), size=len(data))

    def close(self) -> None:
        self._client.close()

    # -------------------------------------------------------------------------
    # Private Methods
    # -------------------------------------------------------------------------

    def _next_link(self, response: Any) -> Optional[str]:
        """Extract the rel="next" URL from the Link header."""
        next_url = response.links.get("next", {}).get("url")
        if not next_url:
            return None

        if not self._client.is_same_origin(next_url):
            self.logger.warning(f"Ignoring pagination link outside API host: {next_url[:100]}")
            return None

        return next_url

    @staticmethod
    def _expect_list(data: Any, endpoint: str) -> list[dict]:
        if not isinstance(data, list):
            raise TransientError(f"Unexpected response from {endpoint}: expected a JSON array")
        return data

    def _parse_issue(self, data: dict) -> Issue:
        """Parse a REST issue object into an Issue."""
        return Issue(
            number=data["number"],
            title=data.get("title") or "",
            body=data.get("body") or "",
            state=data.get("state", "open"),
            author=login_of(data.get("user")),
            created_at=parse_timestamp(data.get("created_at")),
            updated_at=parse_timestamp(data.get("updated_at")),
            comment_count=data.get("comments") or 0,
            labels=tuple(label["name"] for label in data.get("labels", [])),
            assignees=tuple(login_of(user) for user in data.get("assignees", [])),
        )

    def _parse_comment(self, data: dict, issue_number: int) -> Comment:
        """Parse a REST comment object into a Comment."""
        return Comment(
            id=data["id"],
            issue_number=issue_number,
            body=data.get("body") or "",
            author=login_of(data.get("user")),
            created_at=parse_timestamp(data.get("created_at")),
            updated_at=parse_timestamp(data.get("updated_at")),
        )
