"""
Adapters - Concrete implementations of ports.

This module contains implementations for:
- Issue Sources: GitHub REST, GitHub GraphQL
- Storage: SQLite (via SQLAlchemy)
- Config: Environment variables and .env files
"""

from .github import GitHubRestAdapter, GitHubGraphQLAdapter, create_issue_source
from .storage import SqliteIssueStore
from .config import EnvironmentConfigProvider

__all__ = [
    "GitHubRestAdapter",
    "GitHubGraphQLAdapter",
    "create_issue_source",
    "SqliteIssueStore",
    "EnvironmentConfigProvider",
]
