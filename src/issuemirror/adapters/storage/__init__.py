"""
Storage Adapters - Local mirror persistence.
"""

from .sqlite import SqliteIssueStore
from .path import resolve_db_path, ensure_db_path

__all__ = ["SqliteIssueStore", "resolve_db_path", "ensure_db_path"]
