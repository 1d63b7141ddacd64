"""Tests for the SQLite issue store."""

import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy import update
from sqlalchemy.exc import DatabaseError, OperationalError

from issuemirror.adapters.storage import SqliteIssueStore, ensure_db_path, resolve_db_path
from issuemirror.adapters.storage.models import RepositoryRow
from issuemirror.core.domain import RepositoryRef
from issuemirror.core.exceptions import (
    ConfigurationError,
    StorageCorruptionError,
    StorageError,
    SyncInProgressError,
)


T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class TestUpsert:
    """Tests for idempotent upserts."""

    def test_insert_and_read_back(self, store, repo, make_issue):
        issue = make_issue(1, labels=("bug", "ui"), assignees=("octocat",))

        store.upsert_issue(repo, issue)

        assert store.get_issue(repo, 1) == issue
        assert store.issue_count(repo) == 1

    def test_upsert_twice_is_idempotent(self, store, repo, make_issue, make_comment):
        issues = [make_issue(n, comment_count=1) for n in (1, 2, 3)]
        comments = [make_comment(100 + n, n) for n in (1, 2, 3)]

        for _ in range(2):
            for issue in issues:
                store.upsert_issue(repo, issue)
            for comment in comments:
                store.upsert_comment(repo, comment.issue_number, comment)

        assert store.issue_count(repo) == 3
        assert store.list_issues(repo) == sorted(issues, key=lambda i: i.updated_at, reverse=True)
        for comment in comments:
            assert store.list_comments(repo, comment.issue_number) == [comment]

    def test_upsert_replaces_all_mutable_fields(self, store, repo, make_issue):
        store.upsert_issue(repo, make_issue(1, title="Old", labels=("bug",)))
        updated = make_issue(1, title="New", state="closed", labels=(), comment_count=4)

        store.upsert_issue(repo, updated)

        assert store.get_issue(repo, 1) == updated

    def test_comment_moves_with_upsert(self, store, repo, make_issue, make_comment):
        store.upsert_issue(repo, make_issue(1))
        store.upsert_comment(repo, 1, make_comment(50, 1, body="first"))
        store.upsert_comment(repo, 1, make_comment(50, 1, body="edited"))

        assert [c.body for c in store.list_comments(repo, 1)] == ["edited"]
        assert store.comment_count(repo, 1) == 1

    def test_repositories_are_isolated(self, store, repo, make_issue):
        other = RepositoryRef("acme", "gadgets")
        store.upsert_issue(repo, make_issue(1))
        store.upsert_issue(other, make_issue(1, title="Other"))

        assert store.get_issue(repo, 1).title == "Issue 1"
        assert store.get_issue(other, 1).title == "Other"

    def test_missing_issue(self, store, repo):
        assert store.get_issue(repo, 404) is None
        assert store.comment_count(repo, 404) == 0
        assert store.issue_count(repo) == 0


class TestReplaceIssueSet:
    """Tests for full-sync pruning."""

    def test_prunes_missing_issues_and_their_comments(self, store, repo, make_issue, make_comment):
        for n in (1, 2, 3):
            store.upsert_issue(repo, make_issue(n))
        store.upsert_comment(repo, 2, make_comment(20, 2))

        removed = store.replace_issue_set(repo, [1, 3])

        assert removed == 1
        assert store.get_issue(repo, 2) is None
        assert store.comment_count(repo, 2) == 0
        assert store.issue_count(repo) == 2

    def test_only_touches_one_repository(self, store, repo, make_issue):
        other = RepositoryRef("acme", "gadgets")
        store.upsert_issue(repo, make_issue(1))
        store.upsert_issue(other, make_issue(1))

        store.replace_issue_set(repo, [])

        assert store.issue_count(repo) == 0
        assert store.issue_count(other) == 1

    def test_large_prune(self, store, repo, make_issue):
        for n in range(1, 702):
            store.upsert_issue(repo, make_issue(n))

        assert store.replace_issue_set(repo, [1]) == 700
        assert store.issue_count(repo) == 1


class TestReplaceCommentSet:
    """Tests for pruning deleted comments of one issue."""

    def test_prunes_only_that_issue(self, store, repo, make_issue, make_comment):
        store.upsert_issue(repo, make_issue(1))
        store.upsert_issue(repo, make_issue(2))
        for comment_id in (10, 11, 12):
            store.upsert_comment(repo, 1, make_comment(comment_id, 1))
        store.upsert_comment(repo, 2, make_comment(20, 2))

        removed = store.replace_comment_set(repo, 1, [10, 12])

        assert removed == 1
        assert [c.id for c in store.list_comments(repo, 1)] == [10, 12]
        assert store.comment_count(repo, 2) == 1


class TestWatermark:
    """Tests for the per-repository watermark."""

    def test_absent_until_set(self, store, repo):
        assert store.get_watermark(repo) is None

    def test_set_and_get(self, store, repo):
        assert store.set_watermark(repo, T0) == T0
        assert store.get_watermark(repo) == T0

    def test_never_moves_backwards(self, store, repo):
        store.set_watermark(repo, T0)

        kept = store.set_watermark(repo, T0 - timedelta(hours=1))

        assert kept == T0
        assert store.get_watermark(repo) == T0

    def test_advances(self, store, repo):
        store.set_watermark(repo, T0)
        store.set_watermark(repo, T0 + timedelta(minutes=5))
        assert store.get_watermark(repo) == T0 + timedelta(minutes=5)

    def test_naive_timestamp_is_utc(self, store, repo):
        store.set_watermark(repo, datetime(2024, 6, 1, 12, 0))
        assert store.get_watermark(repo) == T0

    def test_survives_reopen(self, tmp_path, repo, make_issue):
        path = tmp_path / "mirror.db"
        first = SqliteIssueStore(path)
        first.upsert_issue(repo, make_issue(1))
        first.set_watermark(repo, T0)
        first.close()

        second = SqliteIssueStore(path)
        try:
            assert second.get_watermark(repo) == T0
            assert second.issue_count(repo) == 1
        finally:
            second.close()

    def test_clear(self, store, repo, make_issue):
        store.upsert_issue(repo, make_issue(1))
        store.set_watermark(repo, T0)

        store.clear(repo)

        assert store.issue_count(repo) == 0
        assert store.get_watermark(repo) is None


class TestSyncLock:
    """Tests for the per-repository sync claim."""

    def test_second_claim_is_rejected(self, store, repo):
        with store.sync_lock(repo):
            with pytest.raises(SyncInProgressError):
                with store.sync_lock(repo):
                    pass

    def test_released_after_use(self, store, repo):
        with store.sync_lock(repo):
            pass
        with store.sync_lock(repo):
            pass

    def test_other_repositories_are_independent(self, store, repo):
        with store.sync_lock(repo):
            with store.sync_lock(RepositoryRef("acme", "gadgets")):
                pass

    def test_claim_is_shared_across_stores_on_one_file(self, tmp_path, repo):
        first = SqliteIssueStore(tmp_path / "m.db")
        second = SqliteIssueStore(tmp_path / "m.db")
        try:
            with first.sync_lock(repo):
                with pytest.raises(SyncInProgressError, match="already running"):
                    with second.sync_lock(repo):
                        pass

            with second.sync_lock(repo):
                pass
        finally:
            first.close()
            second.close()

    def test_released_when_the_pass_raises(self, tmp_path, repo):
        first = SqliteIssueStore(tmp_path / "m.db")
        second = SqliteIssueStore(tmp_path / "m.db")
        try:
            with pytest.raises(RuntimeError):
                with first.sync_lock(repo):
                    raise RuntimeError("pass failed")

            with second.sync_lock(repo):
                pass
        finally:
            first.close()
            second.close()

    def test_abandoned_claim_is_taken_over(self, tmp_path, repo):
        crashed = SqliteIssueStore(tmp_path / "m.db", lease_ttl=60)
        survivor = SqliteIssueStore(tmp_path / "m.db", lease_ttl=60)
        try:
            crashed._claim(repo, "crashed-process")
            with crashed.engine.begin() as connection:
                connection.execute(
                    update(RepositoryRow).values(
                        sync_started_at=datetime.now(timezone.utc) - timedelta(minutes=5)
                    )
                )

            with survivor.sync_lock(repo):
                pass
        finally:
            crashed.close()
            survivor.close()

    def test_concurrent_writers(self, store, repo, make_issue):
        def write(start):
            for n in range(start, start + 50):
                store.upsert_issue(repo, make_issue(n))

        threads = [threading.Thread(target=write, args=(start,)) for start in (1, 51, 101)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert store.issue_count(repo) == 150


class TestErrorTranslation:
    """Tests for mapping SQLAlchemy failures onto storage errors."""

    def test_generic_failure(self, store, repo, make_issue):
        error = OperationalError("INSERT", {}, Exception("disk I/O error"))
        with patch.object(store, "_repository_id", side_effect=error):
            with pytest.raises(StorageError) as exc_info:
                store.upsert_issue(repo, make_issue(1))
        assert not isinstance(exc_info.value, StorageCorruptionError)

    def test_corruption(self, store, repo, make_issue):
        orig = Exception("database disk image is malformed")
        orig.sqlite_errorcode = 11
        error = DatabaseError("SELECT", {}, orig)

        with patch.object(store, "_repository_id", side_effect=error):
            with pytest.raises(StorageCorruptionError):
                store.upsert_issue(repo, make_issue(1))

    def test_not_a_database(self, tmp_path, repo):
        path = tmp_path / "garbage.db"
        path.write_bytes(b"this is not an sqlite file" * 100)

        with pytest.raises(StorageError):
            SqliteIssueStore(path)


class TestDbPath:
    """Tests for database path resolution."""

    def test_precedence(self, tmp_path):
        assert resolve_db_path("flag.db", "config.db").name == "flag.db"
        assert resolve_db_path(None, "config.db").name == "config.db"
        assert resolve_db_path(None, None).name == ".issuemirror.db"

    def test_creates_parent_directories(self, tmp_path):
        path = tmp_path / "nested" / "deeper" / "mirror.db"
        assert ensure_db_path(path) == path
        assert path.parent.is_dir()

    def test_unwritable_location(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")

        with pytest.raises(ConfigurationError):
            ensure_db_path(blocker / "mirror.db")
