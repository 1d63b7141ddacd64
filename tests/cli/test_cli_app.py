"""Tests for the command line entry point."""

import io
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from issuemirror.application.sync import SyncResult
from issuemirror.cli.app import create_parser, main
from issuemirror.cli.exit_codes import ExitCode
from issuemirror.cli.output import Console
from issuemirror.core.domain import RepositoryRef, SyncPhase, SyncProgress, SyncStatus
from issuemirror.core.exceptions import ErrorKind


T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
REPO = RepositoryRef("acme", "widgets")


@pytest.fixture(autouse=True)
def isolated(monkeypatch, tmp_path):
    for key in ("GITHUB_TOKEN", "ISSUEMIRROR_REPOSITORY", "ISSUEMIRROR_DB_PATH", "ISSUEMIRROR_TRANSPORT"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    with patch("issuemirror.adapters.config.environment.gh_cli_token", return_value=None):
        yield


def make_result(status=SyncStatus.COMPLETED, error_kind=None, **counts):
    return SyncResult(
        repository=REPO,
        status=status,
        started_at=T0,
        finished_at=T0,
        watermark=T0 if status is SyncStatus.COMPLETED else None,
        error_kind=error_kind,
        error_detail="details" if error_kind else None,
        **counts,
    )


@pytest.fixture
def orchestrator():
    """Patch the orchestrator built by the sync command."""
    with patch("issuemirror.cli.app.SyncOrchestrator") as cls:
        instance = MagicMock()
        instance.needs_refresh.return_value = True
        handle = MagicMock()
        handle.events = iter([
            SyncProgress(repository=REPO, phase=SyncPhase.FETCHING_ISSUES, fetched=1, page=1),
            SyncProgress(repository=REPO, phase=SyncPhase.FETCHING_COMMENTS, fetched=1, total=1, issue_number=1),
        ])
        handle.result.return_value = make_result(issues_fetched=1)
        instance.start.return_value = handle
        cls.from_config.return_value = instance
        yield instance


class TestParser:
    """Tests for argument parsing."""

    def test_sync_flags(self):
        args = create_parser().parse_args(
            ["sync", "acme/widgets", "--full", "--transport", "graphql", "--db", "x.db", "-v"]
        )
        assert args.command == "sync"
        assert args.repository == "acme/widgets"
        assert args.full is True
        assert args.transport == "graphql"
        assert args.db == "x.db"
        assert args.verbose is True

    def test_flags_default_to_none(self):
        args = create_parser().parse_args(["sync", "acme/widgets"])
        assert args.full is None
        assert args.verbose is None
        assert args.if_stale is False

    def test_rejects_unknown_transport(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["sync", "acme/widgets", "--transport", "soap"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args([])


class TestSyncCommand:
    """Tests for `issuemirror sync`."""

    def test_missing_repository(self, orchestrator):
        assert main(["sync", "--token", "t"]) == ExitCode.CONFIG_ERROR
        orchestrator.start.assert_not_called()

    def test_missing_token(self, orchestrator):
        assert main(["sync", "acme/widgets"]) == ExitCode.CONFIG_ERROR

    def test_malformed_repository(self, orchestrator):
        assert main(["sync", "acme", "--token", "t"]) == ExitCode.CONFIG_ERROR

    def test_success(self, orchestrator, capsys):
        code = main(["sync", "acme/widgets", "--token", "t", "--no-color"])

        assert code == ExitCode.SUCCESS
        orchestrator.start.assert_called_once_with(REPO, full=False)
        orchestrator.close.assert_called_once()
        out = capsys.readouterr().out
        assert "Sync Summary" in out
        assert "Issues Fetched" in out

    def test_full_flag(self, orchestrator):
        main(["sync", "acme/widgets", "--token", "t", "--full"])
        orchestrator.start.assert_called_once_with(REPO, full=True)

    def test_repository_from_environment(self, orchestrator, monkeypatch):
        monkeypatch.setenv("ISSUEMIRROR_REPOSITORY", "acme/widgets")
        monkeypatch.setenv("GITHUB_TOKEN", "t")

        assert main(["sync"]) == ExitCode.SUCCESS

    @pytest.mark.parametrize("kind, expected", [
        ("authentication", ExitCode.AUTH_ERROR),
        ("not_found", ExitCode.NOT_FOUND),
        ("transient", ExitCode.ERROR),
        ("corruption", ExitCode.ERROR),
    ])
    def test_failure_exit_codes(self, orchestrator, kind, expected):
        orchestrator.start.return_value.result.return_value = make_result(SyncStatus.FAILED, kind)

        assert main(["sync", "acme/widgets", "--token", "t"]) == expected

    def test_cancelled(self, orchestrator):
        orchestrator.start.return_value.result.return_value = make_result(SyncStatus.CANCELLED, "cancelled")

        assert main(["sync", "acme/widgets", "--token", "t"]) == ExitCode.CANCELLED

    def test_ctrl_c_cancels_the_pass(self, orchestrator):
        handle = orchestrator.start.return_value

        def interrupted():
            raise KeyboardInterrupt
            yield

        handle.events = interrupted()
        handle.result.return_value = make_result(SyncStatus.CANCELLED, "cancelled")

        assert main(["sync", "acme/widgets", "--token", "t"]) == ExitCode.CANCELLED
        handle.cancel.assert_called_once()

    def test_if_stale_skips_recent_mirror(self, orchestrator):
        orchestrator.needs_refresh.return_value = False

        assert main(["sync", "acme/widgets", "--token", "t", "--if-stale"]) == ExitCode.SUCCESS
        orchestrator.start.assert_not_called()


class TestStatusCommand:
    """Tests for `issuemirror status`."""

    def test_empty_mirror(self, tmp_path, capsys):
        db = tmp_path / "data" / "mirror.db"

        assert main(["status", "acme/widgets", "--db", str(db), "--no-color"]) == ExitCode.SUCCESS

        out = capsys.readouterr().out
        assert "Local Mirror: acme/widgets" in out
        assert "never" in out
        assert db.exists()


class TestExitCodes:
    """Tests for ExitCode mapping."""

    def test_from_error_kind(self):
        assert ExitCode.from_error_kind(ErrorKind.AUTHENTICATION) == 3
        assert ExitCode.from_error_kind(ErrorKind.NOT_FOUND) == 4
        assert ExitCode.from_error_kind(ErrorKind.CANCELLED) == 130
        assert ExitCode.from_error_kind(ErrorKind.CONFIGURATION) == 2
        assert ExitCode.from_error_kind(ErrorKind.CONFLICT) == 1


class TestConsole:
    """Tests for console rendering."""

    @pytest.fixture
    def stream(self):
        return io.StringIO()

    def test_progress_with_and_without_total(self, stream):
        console = Console(stream=stream)
        console.sync_progress(SyncProgress(phase=SyncPhase.FETCHING_ISSUES, fetched=40, page=1))
        console.sync_progress(SyncProgress(phase=SyncPhase.FETCHING_COMMENTS, fetched=1, total=4, issue_number=9))
        console.print("done")

        text = stream.getvalue()
        assert "40 issues (page 1)" in text
        assert "25%" in text
        assert text.endswith("\ndone\n")

    def test_failed_summary(self, stream):
        Console(stream=stream).sync_result(make_result(SyncStatus.FAILED, "authentication"))
        assert "Sync failed (authentication): details" in stream.getvalue()

    def test_no_color_when_not_a_tty(self, stream):
        console = Console(color=True, stream=stream)
        console.success("ok")
        assert "\033[" not in stream.getvalue()
