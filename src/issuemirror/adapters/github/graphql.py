"""
GitHub GraphQL Adapter - Implements IssueSourcePort over the GraphQL API v4.

Pagination follows ``pageInfo.endCursor`` while ``pageInfo.hasNextPage`` is
true. Unlike REST, GraphQL reports ``totalCount``, so progress has a total.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from ...core.cancellation import CancellationToken
from ...core.domain.entities import Comment, Issue, Page
from ...core.domain.value_objects import RepositoryRef
from ...core.exceptions import NotFoundError, TransientError
from ...core.ports.config_provider import SourceConfig
from ...core.ports.issue_source import IssueSourcePort
from .adapter import format_timestamp, login_of, malformed_records, parse_timestamp
from .client import GitHubApiClient


ISSUES_QUERY = """
query($owner: String!, $name: String!, $first: Int!, $cursor: String,
      $states: [IssueState!], $since: DateTime) {
  repository(owner: $owner, name: $name) {
    issues(first: $first, after: $cursor, states: $states,
           filterBy: {since: $since},
           orderBy: {field: UPDATED_AT, direction: ASC}) {
      totalCount
      pageInfo { hasNextPage endCursor }
      nodes {
        number
        title
        body
        state
        createdAt
        updatedAt
        author { login }
        labels(first: 100) { totalCount nodes { name } }
        assignees(first: 100) { totalCount nodes { login } }
        comments { totalCount }
      }
    }
  }
}
"""

COMMENTS_QUERY = """
query($owner: String!, $name: String!, $number: Int!, $first: Int!, $cursor: String) {
  repository(owner: $owner, name: $name) {
    issue(number: $number) {
      comments(first: $first, after: $cursor) {
        totalCount
        pageInfo { hasNextPage endCursor }
        nodes {
          databaseId
          body
          createdAt
          updatedAt
          author { login }
        }
      }
    }
  }
}
"""

# GraphQL caps connection page size at 100; nested label and assignee
# connections are fetched as one page of this size
MAX_PAGE_SIZE = 100


class GitHubGraphQLAdapter(IssueSourcePort):
    """
    GitHub GraphQL implementation of the IssueSourcePort.
    """

    def __init__(
        self,
        config: SourceConfig,
        client: Optional[GitHubApiClient] = None,
    ):
        self.config = config
        self.logger = logging.getLogger("GitHubGraphQLAdapter")
        self.page_size = min(config.per_page, MAX_PAGE_SIZE)
        self.endpoint = self._graphql_url(config.api_url)

        self._client = client or GitHubApiClient(
            token=config.token,
            base_url=config.api_url,
            timeout=config.timeout,
        )

    @property
    def name(self) -> str:
        return "GitHub GraphQL"

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
        variables = {
            "owner": repository.owner,
            "name": repository.name,
            "first": self.page_size,
            "cursor": cursor,
            "states": [self.config.issue_state.upper()],
            "since": format_timestamp(since) if since is not None else None,
        }
        if self.config.issue_state == "all":
            variables["states"] = None

        data = self._query(ISSUES_QUERY, variables, cancel_token)
        with malformed_records("GraphQL issues query", "issue"):
            connection = self._repository(data, repository)["issues"]
            issues = [self._parse_issue(node) for node in connection.get("nodes") or []]
        return Page(
            items=issues,
            next_cursor=self._next_cursor(connection),
            total_count=connection.get("totalCount"),
            size=len(issues),
        )

    def fetch_comment_page(
        self,
        repository: RepositoryRef,
        issue_number: int,
        cursor: Optional[str],
        cancel_token: Optional[CancellationToken] = None,
    ) -> Page[Comment]:
        variables = {
            "owner": repository.owner,
            "name": repository.name,
            "number": issue_number,
            "first": self.page_size,
            "cursor": cursor,
        }

        data = self._query(COMMENTS_QUERY, variables, cancel_token)
        issue = self._repository(data, repository).get("issue")
        if issue is None:
            raise NotFoundError(f"Issue #{issue_number} not found in {repository}")

        with malformed_records(f"GraphQL comments query for #{issue_number}", "comment"):
            connection = issue["comments"]
            comments = [
                self._parse_comment(node, issue_number)
                for node in connection.get("nodes") or []
            ]
        return Page(
            items=comments,
            next_cursor=self._next_cursor(connection),
            total_count=connection.get("totalCount"),
            size=len(comments),
        )

    def close(self) -> None:
        self._client.close()

    # -------------------------------------------------------------------------
    # Private Methods
    # -------------------------------------------------------------------------

    def _query(
        self,
        query: str,
        variables: dict[str, Any],
        cancel_token: Optional[CancellationToken],
    ) -> dict[str, Any]:
        """Run a query and classify GraphQL-level errors."""
        response = self._client.post(
            self.endpoint,
            json={"query": query, "variables": variables},
            cancel_token=cancel_token,
        )
        payload = self._client.decode(response)

        if not isinstance(payload, dict):
            raise TransientError("Unexpected GraphQL response: expected a JSON object")

        errors = payload.get("errors") or []
        if errors:
            messages = "; ".join(error.get("message", "unknown error") for error in errors)
            if any(error.get("type") == "NOT_FOUND" for error in errors):
                raise NotFoundError(f"GraphQL: {messages}")
            raise TransientError(f"GraphQL error: {messages}")

        data = payload.get("data")
        if not isinstance(data, dict):
            raise TransientError("GraphQL response carried no data")
        return data

    @staticmethod
    def _repository(data: dict[str, Any], repository: RepositoryRef) -> dict[str, Any]:
        repo = data.get("repository")
        if repo is None:
            raise NotFoundError(f"Repository not found: {repository}")
        return repo

    @staticmethod
    def _next_cursor(connection: dict[str, Any]) -> Optional[str]:
        page_info = connection.get("pageInfo") or {}
        if not page_info.get("hasNextPage"):
            return None
        return page_info.get("endCursor")

    @staticmethod
    def _graphql_url(api_url: str) -> str:
        # GitHub Enterprise serves REST at /api/v3 and GraphQL at /api/graphql
        base = api_url.rstrip("/")
        if base.endswith("/v3"):
            base = base[: -len("/v3")]
        return f"{base}/graphql"

    def _parse_issue(self, node: dict) -> Issue:
        number = node["number"]
        labels = self._nested_nodes(node, "labels", number)
        assignees = self._nested_nodes(node, "assignees", number)

        return Issue(
            number=number,
            title=node.get("title") or "",
            body=node.get("body") or "",
            state=(node.get("state") or "OPEN").lower(),
            author=login_of(node.get("author")),
            created_at=parse_timestamp(node.get("createdAt")),
            updated_at=parse_timestamp(node.get("updatedAt")),
            comment_count=(node.get("comments") or {}).get("totalCount") or 0,
            labels=tuple(label["name"] for label in labels),
            assignees=tuple(login_of(user) for user in assignees),
        )

    def _nested_nodes(self, node: dict, field: str, number: int) -> list:
        """Nodes of a nested connection, warning when it holds more than one page."""
        connection = node.get(field) or {}
        nodes = connection.get("nodes") or []
        total = connection.get("totalCount")
        if total is not None and total > len(nodes):
            self.logger.warning(
                f"Issue #{number} has {total} {field}, only the first {len(nodes)} were mirrored"
            )
        return nodes

    def _parse_comment(self, node: dict, issue_number: int) -> Comment:
        return Comment(
            id=node["databaseId"],
            issue_number=issue_number,
            body=node.get("body") or "",
            author=login_of(node.get("author")),
            created_at=parse_timestamp(node.get("createdAt")),
            updated_at=parse_timestamp(node.get("updatedAt")),
        )
