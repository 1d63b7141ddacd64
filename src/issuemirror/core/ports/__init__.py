"""
Ports - Abstract interfaces for external dependencies.

Ports define the contracts that adapters must implement.
This enables dependency inversion and easy testing.
"""

from .issue_source import IssueSourcePort, PageCall, PageFetcher, paginate, unique_pages
from .issue_store import IssueStorePort
from .config_provider import (
    ConfigProviderPort,
    AppConfig,
    SourceConfig,
    SyncConfig,
    StoreConfig,
)

__all__ = [
    "IssueSourcePort",
    "PageCall",
    "PageFetcher",
    "paginate",
    "unique_pages",
    "IssueStorePort",
    "ConfigProviderPort",
    "AppConfig",
    "SourceConfig",
    "SyncConfig",
    "StoreConfig",
]
