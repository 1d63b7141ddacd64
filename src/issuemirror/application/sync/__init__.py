"""
Sync Module - Mirror a remote issue tracker into the local store.
"""

from .orchestrator import SyncOrchestrator, SyncResult, is_stale
from .channel import ProgressChannel, SyncHandle
from .retry import RetryPolicy

__all__ = [
    "SyncOrchestrator",
    "SyncResult",
    "is_stale",
    "ProgressChannel",
    "SyncHandle",
    "RetryPolicy",
]
