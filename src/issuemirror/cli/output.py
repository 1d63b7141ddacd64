"""
Output - Console output formatting.

Provides pretty-printed output with colors and formatting.
"""

import sys
from datetime import datetime
from typing import Optional, TextIO

from ..application.sync import SyncResult
from ..core.domain.entities import SyncPhase
from ..core.domain.events import SyncProgress
from ..core.domain.value_objects import RepositoryRef


class Colors:
    """ANSI color codes."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"


class Symbols:
    """Unicode symbols for output."""

    CHECK = "✓"
    CROSS = "✗"
    ARROW = "→"
    WARN = "⚠"
    INFO = "ℹ"

    BOX_H = "─"


class Console:
    """Console output helper with colors and formatting."""

    def __init__(self, color: bool = True, verbose: bool = False, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdout
        self.color = color and self.stream.isatty()
        self.verbose = verbose
        self._progress_open = False

    def _c(self, text: str, *codes: str) -> str:
        """Apply color codes to text."""
        if not self.color:
            return text
        return "".join(codes) + text + Colors.RESET

    def print(self, text: str = "") -> None:
        """Print text."""
        self._end_progress()
        self.stream.write(text + "\n")
        self.stream.flush()

    def header(self, text: str) -> None:
        """Print a header."""
        width = max(len(text) + 4, 50)
        border = self._c(Symbols.BOX_H * width, Colors.CYAN) if self.color else "-" * width

        self.print()
        self.print(border)
        self.print(self._c(f"  {text}", Colors.BOLD, Colors.CYAN))
        self.print(border)
        self.print()

    def section(self, text: str) -> None:
        """Print a section header."""
        self.print()
        self.print(self._c(f"{Symbols.ARROW} {text}", Colors.BOLD, Colors.BLUE))

    def success(self, text: str) -> None:
        self.print(self._c(f"  {Symbols.CHECK} {text}", Colors.GREEN))

    def error(self, text: str) -> None:
        self.print(self._c(f"  {Symbols.CROSS} {text}", Colors.RED))

    def warning(self, text: str) -> None:
        self.print(self._c(f"  {Symbols.WARN} {text}", Colors.YELLOW))

    def info(self, text: str) -> None:
        self.print(self._c(f"  {Symbols.INFO} {text}", Colors.CYAN))

    def detail(self, text: str) -> None:
        """Print detail text (dimmed)."""
        self.print(self._c(f"    {text}", Colors.DIM))

    def table(self, headers: list[str], rows: list[list[str]]) -> None:
        """Print a simple table."""
        # Calculate column widths
        widths = [len(h) for h in headers]
        for row in rows:
            for i, cell in enumerate(row):
                if i < len(widths):
                    widths[i] = max(widths[i], len(str(cell)))

        header_line = "  " + "  ".join(
            self._c(h.ljust(widths[i]), Colors.BOLD)
            for i, h in enumerate(headers)
        )
        self.print(header_line)
        self.print("  " + "  ".join("-" * w for w in widths))

        for row in rows:
            row_line = "  " + "  ".join(
                str(cell).ljust(widths[i]) if i < len(widths) else str(cell)
                for i, cell in enumerate(row)
            )
            self.print(row_line)

    def progress(self, current: int, total: Optional[int], message: str = "") -> None:
        """
        Rewrite the current line with a progress bar.

        Without a known total only the running count is shown.
        """
        if total:
            width = 30
            current = min(current, total)
            filled = int(width * current / total)
            bar = "█" * filled + "░" * (width - filled)
            pct = int(100 * current / total)
            line = f"\r  [{bar}] {pct}% {message}"
        else:
            line = f"\r  {current} {message}"

        self.stream.write(line)
        self.stream.flush()
        self._progress_open = True

    def _end_progress(self) -> None:
        if self._progress_open:
            self._progress_open = False
            self.stream.write("\n")

    # -------------------------------------------------------------------------
    # Sync Output
    # -------------------------------------------------------------------------

    def sync_progress(self, event: SyncProgress) -> None:
        """Render one progress event."""
        if event.phase is SyncPhase.FETCHING_ISSUES:
            message = f"issues (page {event.page})"
        else:
            message = f"comment threads (#{event.issue_number})"
        self.progress(event.fetched, event.total, message)

    def sync_result(self, result: SyncResult) -> None:
        """Print sync result summary."""
        self.section("Sync Summary")
        self.print()

        self.info(f"Repository: {result.repository}")
        self.info(f"Mode: {result.mode.value.upper()}")
        if result.since is not None:
            self.detail(f"Changes since {format_time(result.since)}")

        self.print()

        stats = [
            ["Issues Fetched", str(result.issues_fetched)],
            ["Issues Removed", str(result.issues_removed)],
            ["Comment Threads Refreshed", str(result.comment_threads_refreshed)],
            ["Comments Fetched", str(result.comments_fetched)],
            ["Comments Removed", str(result.comments_removed)],
            ["Pages Fetched", str(result.pages_fetched)],
            ["Retries", str(result.retries)],
        ]
        self.table(["Metric", "Count"], stats)

        self.print()
        if result.success:
            duration = result.duration
            took = f" in {duration.total_seconds():.1f}s" if duration is not None else ""
            self.success(f"Sync completed{took}")
            self.detail(f"Watermark: {format_time(result.watermark)}")
        elif result.cancelled:
            self.warning("Sync cancelled; records fetched so far were kept")
        else:
            self.error(f"Sync failed ({result.error_kind}): {result.error_detail}")

    def repository_status(
        self,
        repository: RepositoryRef,
        issue_count: int,
        watermark: Optional[datetime],
        stale: bool,
    ) -> None:
        """Print what the local mirror holds for a repository."""
        self.section(f"Local Mirror: {repository}")
        self.print()

        self.table(
            ["Field", "Value"],
            [
                ["Issues", str(issue_count)],
                ["Last Sync", format_time(watermark)],
            ],
        )

        self.print()
        if watermark is None:
            self.warning("Never synced; the next sync will be a full sync")
        elif stale:
            self.warning("Mirror is stale")
        else:
            self.success("Mirror is up to date")


def format_time(value: Optional[datetime]) -> str:
    if value is None:
        return "never"
    return value.strftime("%Y-%m-%d %H:%M:%S %Z").strip()
