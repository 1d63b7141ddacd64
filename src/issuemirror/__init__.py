"""
issuemirror - Mirror a GitHub repository's issues into a local SQLite database.

Layers:
- core/: Domain entities, ports, exceptions and cancellation
- adapters/: GitHub (REST and GraphQL), SQLite storage, configuration
- application/: Sync orchestrator
- cli/: Command line entry point
"""

__version__ = "0.1.0"

from .core.domain import RepositoryRef, Issue, Comment, SyncMode, SyncPhase, SyncStatus
from .core.exceptions import ErrorKind, SyncError
from .core.cancellation import CancellationToken
from .application import SyncOrchestrator, SyncResult

__all__ = [
    "__version__",
    "RepositoryRef",
    "Issue",
    "Comment",
    "SyncMode",
    "SyncPhase",
    "SyncStatus",
    "ErrorKind",
    "SyncError",
    "CancellationToken",
    "SyncOrchestrator",
    "SyncResult",
]
