"""
Sync Orchestrator - Coordinates the synchronization process.

This is the main entry point for sync operations.
"""

import logging
import threading
from contextlib import ExitStack
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from ...core.cancellation import CancellationToken
from ...core.domain.entities import SyncMode, SyncPhase, SyncStatus
from ...core.domain.events import (
    EventBus,
    SyncCompleted,
    SyncFailed,
    SyncPhaseChanged,
    SyncProgress,
    SyncStarted,
)
from ...core.domain.value_objects import RepositoryRef
from ...core.exceptions import CancelledError, SyncError, TransientError
from ...core.ports.config_provider import AppConfig, SyncConfig
from ...core.ports.issue_source import IssueSourcePort, PageCall, PageFetcher
from ...core.ports.issue_store import IssueStorePort
from .channel import ProgressChannel, SyncHandle
from .retry import RetryPolicy


ProgressCallback = Callable[[SyncProgress], None]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def is_stale(watermark: Optional[datetime], max_age: float, now: Optional[datetime] = None) -> bool:
    """True when there is no watermark or it is older than ``max_age`` seconds."""
    if watermark is None:
        return True
    return (now or utc_now()) - watermark > timedelta(seconds=max_age)


@dataclass
class SyncResult:
    """Result of a sync operation."""

    repository: RepositoryRef
    mode: SyncMode = SyncMode.FULL
    status: Optional[SyncStatus] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    since: Optional[datetime] = None

    # Counts
    issues_fetched: int = 0
    issues_removed: int = 0
    comments_fetched: int = 0
    comments_removed: int = 0
    comment_threads_refreshed: int = 0
    pages_fetched: int = 0
    retries: int = 0

    # Outcome
    error_kind: Optional[str] = None
    error_detail: Optional[str] = None
    watermark: Optional[datetime] = None

    @property
    def success(self) -> bool:
        return self.status is SyncStatus.COMPLETED

    @property
    def cancelled(self) -> bool:
        return self.status is SyncStatus.CANCELLED

    @property
    def duration(self) -> Optional[timedelta]:
        if self.started_at is None or self.finished_at is None:
            return None
        return self.finished_at - self.started_at

    def fail(self, error: SyncError) -> None:
        """Record a terminal error, keeping its kind as classified."""
        self.status = SyncStatus.CANCELLED if isinstance(error, CancelledError) else SyncStatus.FAILED
        self.error_kind = error.kind.value
        self.error_detail = str(error)


class SyncOrchestrator:
    """
    Orchestrates the synchronization of one repository into the local mirror.

    Phases:
    1. Fetch issues page by page, upserting each as it arrives
    2. Reconcile: prune issues gone upstream (full mode only) and pick the
       issues whose comment count changed
    3. Fetch comments for those issues
    4. Commit: advance the watermark to the pass start time
    """

    def __init__(
        self,
        source: IssueSourcePort,
        store: IssueStorePort,
        config: Optional[SyncConfig] = None,
        event_bus: Optional[EventBus] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            source: Remote issue source (owned by this orchestrator)
            store: Local mirror
            config: Sync configuration
            event_bus: Optional event bus
            clock: Returns the current UTC time (injectable for tests)
        """
        self.source = source
        self.store = store
        self.config = config or SyncConfig()
        self.event_bus = event_bus or EventBus(keep_history=False)
        self.clock = clock or utc_now
        self.retry_policy = RetryPolicy(
            max_attempts=max(0, self.config.max_retries) + 1,
            base_delay=self.config.backoff_base,
            max_delay=self.config.backoff_max,
        )
        self.logger = logging.getLogger("SyncOrchestrator")

        self._phases: dict[RepositoryRef, SyncPhase] = {}
        self._phase_lock = threading.Lock()

    @classmethod
    def from_config(cls, config: AppConfig, event_bus: Optional[EventBus] = None) -> "SyncOrchestrator":
        """Build an orchestrator with its own HTTP client and store."""
        # Imported here so the application layer does not depend on adapters at import time
        from ...adapters.github import create_issue_source
        from ...adapters.storage import SqliteIssueStore, ensure_db_path

        source = create_issue_source(config.source)
        store = SqliteIssueStore(ensure_db_path(config.store.db_path))
        return cls(source, store, config.sync, event_bus=event_bus)

    def close(self) -> None:
        """Release the HTTP client and database connections."""
        self.source.close()
        self.store.close()

    # -------------------------------------------------------------------------
    # Main Entry Points
    # -------------------------------------------------------------------------

    def sync(
        self,
        repository: RepositoryRef,
        full: bool = False,
        cancel_token: Optional[CancellationToken] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> SyncResult:
        """
        Run one synchronization pass and wait for it.

        Args:
            repository: Repository to mirror
            full: Force a full sync even when a watermark exists
            cancel_token: Stops the pass (and the in-flight request) when cancelled
            progress_callback: Receives every SyncProgress event

        Returns:
            SyncResult with status COMPLETED, FAILED or CANCELLED

        Raises:
            SyncInProgressError: If a pass for this repository is already running
        """
        with self.store.sync_lock(repository):
            return self._run(repository, full, cancel_token or CancellationToken(), progress_callback)

    def start(
        self,
        repository: RepositoryRef,
        full: bool = False,
        cancel_token: Optional[CancellationToken] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> SyncHandle:
        """
        Run one synchronization pass on a background thread.

        The repository is claimed before this returns, so a concurrent pass
        is rejected here rather than on the worker thread.

        Raises:
            SyncInProgressError: If a pass for this repository is already running
        """
        token = cancel_token or CancellationToken()
        handle = SyncHandle(repository, token, ProgressChannel())

        claim = ExitStack()
        claim.enter_context(self.store.sync_lock(repository))

        def forward(event: SyncProgress) -> None:
            # The bus may be shared by passes for other repositories
            if event.repository != repository:
                return
            handle.events.publish(event)
            if progress_callback is not None:
                progress_callback(event)

        def work() -> None:
            result, error = None, None
            self.event_bus.subscribe(SyncProgress, forward)
            try:
                result = self._run(repository, full, token, None)
            except Exception as e:
                # Already logged by _run; re-raised from handle.result()
                error = e
            finally:
                self.event_bus.unsubscribe(SyncProgress, forward)
                claim.close()
            # The repository is free again before waiters wake up
            handle._finish(result=result, error=error)

        thread = threading.Thread(target=work, name=f"sync-{repository}", daemon=True)
        handle._thread = thread
        thread.start()
        return handle

    def needs_refresh(self, repository: RepositoryRef, max_age: Optional[float] = None) -> bool:
        """
        Whether the mirror is stale enough to sync on startup.

        Args:
            repository: Repository to check
            max_age: Seconds since the last successful pass (config default)
        """
        if max_age is None:
            max_age = self.config.stale_after
        return is_stale(self.store.get_watermark(repository), max_age, now=self.clock())

    def phase(self, repository: RepositoryRef) -> SyncPhase:
        """Current phase of the pass for ``repository``."""
        with self._phase_lock:
            return self._phases.get(repository, SyncPhase.IDLE)

    # -------------------------------------------------------------------------
    # Pass
    # -------------------------------------------------------------------------

    def _run(
        self,
        repository: RepositoryRef,
        full: bool,
        token: CancellationToken,
        progress_callback: Optional[ProgressCallback],
    ) -> SyncResult:
        started_at = self.clock()
        result = SyncResult(repository=repository, started_at=started_at)
        self._set_phase(repository, SyncPhase.IDLE)

        try:
            watermark = self.store.get_watermark(repository)
            if full or self.config.full or watermark is None:
                result.mode = SyncMode.FULL
            else:
                result.mode = SyncMode.INCREMENTAL
                result.since = watermark

            self.logger.info(
                f"Starting {result.mode.value} sync of {repository} via {self.source.name}"
                + (f" (since {watermark.isoformat()})" if result.since else "")
            )
            self.event_bus.publish(SyncStarted(repository=repository, mode=result.mode, since=result.since))

            reported = self._sync_issues(repository, result, token, progress_callback)
            changed = self._reconcile(repository, result, reported, token)
            self._sync_comments(repository, result, changed, token, progress_callback)
            self._commit(repository, result, token)

        except CancelledError as e:
            result.fail(e)
            self._set_phase(repository, SyncPhase.CANCELLED)
            self.logger.info(
                f"Sync of {repository} cancelled after {result.issues_fetched} issues: {e}"
            )
            self._publish_failure(repository, result)

        except SyncError as e:
            result.fail(e)
            self._set_phase(repository, SyncPhase.FAILED)
            self.logger.error(f"Sync of {repository} failed ({e.kind.value}): {e}")
            self._publish_failure(repository, result)

        except Exception:
            result.status = SyncStatus.FAILED
            self._set_phase(repository, SyncPhase.FAILED)
            self.logger.exception(f"Unexpected error during sync of {repository}")
            raise

        finally:
            result.finished_at = self.clock()

        return result

    def _sync_issues(
        self,
        repository: RepositoryRef,
        result: SyncResult,
        token: CancellationToken,
        progress_callback: Optional[ProgressCallback],
    ) -> dict[int, int]:
        """Stream issues into the store. Returns issue number -> reported comment count."""
        self._set_phase(repository, SyncPhase.FETCHING_ISSUES)
        reported: dict[int, int] = {}

        pages = self.source.issue_pages(
            repository,
            since=result.since,
            cancel_token=token,
            call=self._page_call(token, result),
        )
        for page in pages:
            result.pages_fetched += 1
            self.logger.debug(f"Issue page {page.number}: {len(page.items)} issues")

            for issue in page.items:
                token.raise_if_cancelled()
                self.store.upsert_issue(repository, issue)
                reported[issue.number] = issue.comment_count
                result.issues_fetched += 1

                self._progress(
                    SyncProgress(
                        repository=repository,
                        phase=SyncPhase.FETCHING_ISSUES,
                        fetched=result.issues_fetched,
                        total=page.total_count,
                        page=page.number,
                        issue_number=issue.number,
                    ),
                    progress_callback,
                )

        self.logger.info(f"Fetched {result.issues_fetched} issues in {result.pages_fetched} pages")
        return reported

    def _reconcile(
        self,
        repository: RepositoryRef,
        result: SyncResult,
        reported: dict[int, int],
        token: CancellationToken,
    ) -> list[int]:
        """Prune (full mode only) and pick issues whose comment threads changed."""
        token.raise_if_cancelled()
        self._set_phase(repository, SyncPhase.RECONCILING_ISSUES)

        if result.mode is SyncMode.FULL:
            result.issues_removed = self.store.replace_issue_set(repository, reported.keys())

        changed = [
            number
            for number, count in reported.items()
            if self.store.comment_count(repository, number) != count
        ]
        self.logger.info(f"{len(changed)} issues have changed comment threads")
        return changed

    def _sync_comments(
        self,
        repository: RepositoryRef,
        result: SyncResult,
        changed: list[int],
        token: CancellationToken,
        progress_callback: Optional[ProgressCallback],
    ) -> None:
        self._set_phase(repository, SyncPhase.FETCHING_COMMENTS)
        call = self._page_call(token, result)

        for index, number in enumerate(changed, start=1):
            token.raise_if_cancelled()
            seen: list[int] = []

            for page in self.source.comment_pages(repository, number, cancel_token=token, call=call):
                result.pages_fetched += 1
                for comment in page.items:
                    self.store.upsert_comment(repository, number, comment)
                    seen.append(comment.id)
                result.comments_fetched += len(page.items)

            # The thread was read to the end, so anything else stored is gone upstream
            result.comments_removed += self.store.replace_comment_set(repository, number, seen)
            result.comment_threads_refreshed += 1

            self._progress(
                SyncProgress(
                    repository=repository,
                    phase=SyncPhase.FETCHING_COMMENTS,
                    fetched=index,
                    total=len(changed),
                    issue_number=number,
                ),
                progress_callback,
            )

    def _commit(self, repository: RepositoryRef, result: SyncResult, token: CancellationToken) -> None:
        token.raise_if_cancelled()
        self._set_phase(repository, SyncPhase.COMMITTING)

        result.watermark = self.store.set_watermark(repository, result.started_at)
        result.status = SyncStatus.COMPLETED
        self._set_phase(repository, SyncPhase.COMPLETED)

        self.logger.info(
            f"Sync of {repository} complete: {result.issues_fetched} issues, "
            f"{result.issues_removed} removed, {result.comments_fetched} comments "
            f"in {result.comment_threads_refreshed} threads"
        )
        self.event_bus.publish(
            SyncCompleted(
                repository=repository,
                mode=result.mode,
                issues_fetched=result.issues_fetched,
                issues_removed=result.issues_removed,
                comments_fetched=result.comments_fetched,
                watermark=result.watermark,
            )
        )

    # -------------------------------------------------------------------------
    # Private Methods
    # -------------------------------------------------------------------------

    def _page_call(self, token: CancellationToken, result: SyncResult) -> PageCall:
        """Wrap single page fetches in the retry policy."""
        def on_retry(attempt: int, delay: float, error: TransientError) -> None:
            result.retries += 1
            self.logger.warning(
                f"Page fetch failed (attempt {attempt}/{self.retry_policy.max_attempts}), "
                f"retrying in {delay:.1f}s: {error}"
            )

        def call(fetch_page: PageFetcher, cursor: Optional[str]):
            return self.retry_policy.call(fetch_page, cursor, cancel_token=token, on_retry=on_retry)

        return call

    def _set_phase(self, repository: RepositoryRef, phase: SyncPhase) -> None:
        with self._phase_lock:
            previous = self._phases.get(repository, SyncPhase.IDLE)
            self._phases[repository] = phase

        if previous is phase:
            return

        self.logger.debug(f"{repository}: {previous.value} -> {phase.value}")
        self.event_bus.publish(SyncPhaseChanged(repository=repository, previous=previous, current=phase))

    def _progress(self, event: SyncProgress, progress_callback: Optional[ProgressCallback]) -> None:
        self.event_bus.publish(event)
        if progress_callback is not None:
            progress_callback(event)

    def _publish_failure(self, repository: RepositoryRef, result: SyncResult) -> None:
        self.event_bus.publish(
            SyncFailed(
                repository=repository,
                error_kind=result.error_kind or "",
                detail=result.error_detail or "",
                cancelled=result.cancelled,
            )
        )
