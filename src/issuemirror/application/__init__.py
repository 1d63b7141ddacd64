"""
Application Layer - Use cases and orchestration.

This layer contains:
- sync/: Synchronization orchestrator, retry policy and progress channel
"""

from .sync import SyncOrchestrator, SyncResult, SyncHandle, ProgressChannel, RetryPolicy

__all__ = [
    "SyncOrchestrator",
    "SyncResult",
    "SyncHandle",
    "ProgressChannel",
    "RetryPolicy",
]
