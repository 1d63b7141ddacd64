"""
GitHub Adapter - Implementations of IssueSourcePort for GitHub.

Includes two transports behind the same port:
- GitHubRestAdapter: REST API v3, Link header pagination (default)
- GitHubGraphQLAdapter: GraphQL API v4, cursor pagination
"""

from typing import Optional

from ...core.ports.config_provider import SourceConfig
from ...core.ports.issue_source import IssueSourcePort
from .adapter import GitHubRestAdapter, format_timestamp, parse_timestamp
from .client import GitHubApiClient
from .graphql import GitHubGraphQLAdapter


def create_issue_source(
    config: SourceConfig,
    client: Optional[GitHubApiClient] = None,
) -> IssueSourcePort:
    """Build the adapter selected by ``config.transport``."""
    if config.transport == "graphql":
        return GitHubGraphQLAdapter(config, client=client)
    if config.transport == "rest":
        return GitHubRestAdapter(config, client=client)
    raise ValueError(f"Unknown transport: {config.transport}")


__all__ = [
    "GitHubApiClient",
    "GitHubRestAdapter",
    "GitHubGraphQLAdapter",
    "create_issue_source",
    "format_timestamp",
    "parse_timestamp",
]
