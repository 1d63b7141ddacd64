"""
CLI Application - Main entry point for the issuemirror command line tool.

Usage:
    # Mirror the open issues of a repository (incremental after the first run)
    issuemirror sync acme/widgets

    # Re-fetch everything and prune issues closed or deleted upstream
    issuemirror sync acme/widgets --full

    # Only sync when the last successful pass is older than five minutes
    issuemirror sync acme/widgets --if-stale

    # Show what the local mirror holds
    issuemirror status acme/widgets

Environment Variables:
    GITHUB_TOKEN: GitHub token (falls back to `gh auth token`)
    ISSUEMIRROR_REPOSITORY: Default repository (owner/name)
    ISSUEMIRROR_DB_PATH: Database file (default .issuemirror.db)
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from .. import __version__
from ..adapters.config import EnvironmentConfigProvider
from ..adapters.storage import SqliteIssueStore, ensure_db_path
from ..application.sync import SyncOrchestrator, is_stale
from ..core.domain.value_objects import RepositoryRef
from ..core.exceptions import ErrorKind, SyncError
from ..core.ports.config_provider import TRANSPORTS, AppConfig
from .exit_codes import ExitCode
from .output import Console


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # Keep urllib3 connection chatter out of verbose output
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="issuemirror",
        description="Mirror a GitHub repository's issues into a local SQLite database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "repository",
        nargs="?",
        help="Repository as owner/name (or set ISSUEMIRROR_REPOSITORY)",
    )
    common.add_argument(
        "--db",
        type=str,
        help="Path to the local database (default: .issuemirror.db)",
    )
    common.add_argument(
        "--env-file",
        type=Path,
        help="Path to a .env file (default: ./.env)",
    )
    common.add_argument(
        "--verbose", "-v",
        action="store_true",
        default=None,
        help="Enable verbose logging",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    sync = commands.add_parser("sync", parents=[common], help="Fetch issues and comments")
    sync.add_argument(
        "--full",
        action="store_true",
        default=None,
        help="Full sync: ignore the watermark and prune issues gone upstream",
    )
    sync.add_argument(
        "--if-stale",
        action="store_true",
        help="Skip the sync when the last successful pass is recent",
    )
    sync.add_argument(
        "--transport",
        choices=TRANSPORTS,
        help="GitHub API to use (default: rest)",
    )
    sync.add_argument(
        "--token",
        type=str,
        help="GitHub token (or set GITHUB_TOKEN)",
    )
    sync.add_argument(
        "--api-url",
        type=str,
        help="GitHub API base URL, for GitHub Enterprise",
    )

    commands.add_parser("status", parents=[common], help="Show the local mirror state")

    return parser


def load_config(args: argparse.Namespace, use_gh_cli: bool = True) -> AppConfig:
    """Merge .env, environment and command line into an AppConfig."""
    overrides = {
        "repository": args.repository,
        "db": args.db,
        "verbose": args.verbose,
        "full": getattr(args, "full", None),
        "transport": getattr(args, "transport", None),
        "token": getattr(args, "token", None),
        "api_url": getattr(args, "api_url", None),
    }
    provider = EnvironmentConfigProvider(
        env_file=args.env_file,
        cli_overrides=overrides,
        use_gh_cli=use_gh_cli,
    )
    return provider.load()


def run_sync(config: AppConfig, args: argparse.Namespace, console: Console) -> int:
    """Run one sync pass, rendering progress until it ends."""
    logger = logging.getLogger("main")

    errors = config.validate()
    if errors:
        for error in errors:
            console.error(error)
        return ExitCode.CONFIG_ERROR

    repository = RepositoryRef.parse(config.repository)
    orchestrator = SyncOrchestrator.from_config(config)

    try:
        if args.if_stale and not orchestrator.needs_refresh(repository):
            console.info(f"{repository} was synced recently, nothing to do")
            return ExitCode.SUCCESS

        console.header(f"issuemirror: {repository}")
        handle = orchestrator.start(repository, full=config.sync.full)

        try:
            for event in handle.events:
                console.sync_progress(event)
        except KeyboardInterrupt:
            logger.info("Interrupted, cancelling sync")
            handle.cancel("Interrupted by user")

        result = handle.result()
    finally:
        orchestrator.close()

    console.sync_result(result)

    if result.success:
        return ExitCode.SUCCESS
    if result.cancelled:
        return ExitCode.CANCELLED
    return ExitCode.from_error_kind(ErrorKind(result.error_kind))


def run_status(config: AppConfig, console: Console) -> int:
    """Print the state of the local mirror for one repository."""
    repository = RepositoryRef.parse(config.repository)
    store = SqliteIssueStore(ensure_db_path(config.store.db_path))
    try:
        watermark = store.get_watermark(repository)
        console.repository_status(
            repository,
            issue_count=store.issue_count(repository),
            watermark=watermark,
            stale=is_stale(watermark, config.sync.stale_after),
        )
    finally:
        store.close()
    return ExitCode.SUCCESS


def run(args: argparse.Namespace) -> int:
    """Run the parsed command."""
    console = Console(color=not args.no_color, verbose=bool(args.verbose))

    try:
        config = load_config(args, use_gh_cli=args.command == "sync")
        setup_logging(config.sync.verbose)

        if not config.repository:
            console.error("Repository is required (owner/name or ISSUEMIRROR_REPOSITORY)")
            return ExitCode.CONFIG_ERROR

        if args.command == "status":
            return run_status(config, console)
        return run_sync(config, args, console)

    except ValueError as e:
        console.error(str(e))
        return ExitCode.CONFIG_ERROR
    except SyncError as e:
        console.error(str(e))
        return ExitCode.from_error_kind(e.kind)


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)
    return int(run(args))


if __name__ == "__main__":
    sys.exit(main())
