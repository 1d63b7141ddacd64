"""
SQLite Issue Store - Implements IssueStorePort with SQLAlchemy over SQLite.

Each write is its own transaction, so a reader never sees half an issue.
Writes for one repository are serialized; reads are not blocked (WAL mode),
so a browsing UI may observe a partially synced repository.
"""

import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Iterator, Optional, Union

from sqlalchemy import create_engine, delete, event, func, or_, select, update
from sqlalchemy.exc import DatabaseError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ...core.domain.entities import Comment, Issue
from ...core.domain.value_objects import RepositoryRef
from ...core.exceptions import StorageCorruptionError, StorageError, SyncInProgressError
from ...core.ports.issue_store import IssueStorePort
from .models import Base, CommentRow, IssueRow, RepositoryRow, utcnow


# SQLite primary result codes that mean the file itself is damaged
SQLITE_CORRUPT = 11
SQLITE_NOTADB = 26

# A claim older than this is assumed abandoned by a crashed process
DEFAULT_LEASE_TTL = 3600.0

# Keep IN (...) lists well below SQLite's bound-parameter limit
DELETE_CHUNK_SIZE = 500


def _configure_sqlite(dbapi_connection, connection_record) -> None:
    """Per-connection pragmas: enforce cascades, allow reads during writes."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def _is_corruption(error: DatabaseError) -> bool:
    code = getattr(error.orig, "sqlite_errorcode", None)
    if code is None:
        return False
    # Extended result codes carry the primary code in the low byte
    return (code & 0xFF) in (SQLITE_CORRUPT, SQLITE_NOTADB)


class SqliteIssueStore(IssueStorePort):
    """
    SQLite implementation of the IssueStorePort.
    """

    def __init__(
        self,
        location: Union[str, Path],
        echo: bool = False,
        lease_ttl: float = DEFAULT_LEASE_TTL,
    ):
        """
        Open (and create if needed) the local mirror.

        Args:
            location: Database file path, or a full SQLAlchemy URL
            echo: Log every SQL statement
            lease_ttl: Seconds after which an unreleased sync claim may be taken over
        """
        self.logger = logging.getLogger("SqliteIssueStore")
        self.url = self._to_url(location)
        self.lease_ttl = lease_ttl

        self.engine = create_engine(
            self.url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        event.listen(self.engine, "connect", _configure_sqlite)

        with self._translate_errors("initializing schema"):
            Base.metadata.create_all(self.engine)

        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)

        self._repository_ids: dict[RepositoryRef, int] = {}
        self._write_locks: dict[RepositoryRef, threading.RLock] = {}
        self._guard = threading.Lock()

    # -------------------------------------------------------------------------
    # IssueStorePort Implementation - Write Operations
    # -------------------------------------------------------------------------

    def upsert_issue(self, repository: RepositoryRef, issue: Issue) -> None:
        with self._write(repository, f"storing issue #{issue.number}") as session:
            repository_id = self._repository_id(session, repository)
            row = session.get(IssueRow, (repository_id, issue.number))
            if row is None:
                row = IssueRow(repository_id=repository_id, number=issue.number)
                session.add(row)

            row.title = issue.title
            row.body = issue.body
            row.state = issue.state
            row.author = issue.author
            row.created_at = issue.created_at
            row.updated_at = issue.updated_at
            row.comment_count = issue.comment_count
            row.labels = list(issue.labels)
            row.assignees = list(issue.assignees)

    def upsert_comment(
        self,
        repository: RepositoryRef,
        issue_number: int,
        comment: Comment,
    ) -> None:
        with self._write(repository, f"storing comment {comment.id}") as session:
            repository_id = self._repository_id(session, repository)
            row = session.get(CommentRow, (repository_id, comment.id))
            if row is None:
                row = CommentRow(repository_id=repository_id, id=comment.id)
                session.add(row)

            row.issue_number = issue_number
            row.body = comment.body
            row.author = comment.author
            row.created_at = comment.created_at
            row.updated_at = comment.updated_at

    def replace_issue_set(
        self,
        repository: RepositoryRef,
        issue_numbers: Iterable[int],
    ) -> int:
        keep = set(issue_numbers)

        with self._write(repository, "pruning issues") as session:
            repository_id = self._repository_id(session, repository)
            stored = session.scalars(
                select(IssueRow.number).where(IssueRow.repository_id == repository_id)
            ).all()
            stale = sorted(set(stored) - keep)

            for chunk in self._chunks(stale):
                session.execute(
                    delete(IssueRow).where(
                        IssueRow.repository_id == repository_id,
                        IssueRow.number.in_(chunk),
                    )
                )

        if stale:
            self.logger.info(f"Removed {len(stale)} issues from {repository} no longer present upstream")
            self.logger.debug(f"Removed issue numbers: {stale}")
        return len(stale)

    def replace_comment_set(
        self,
        repository: RepositoryRef,
        issue_number: int,
        comment_ids: Iterable[int],
    ) -> int:
        keep = set(comment_ids)

        with self._write(repository, f"pruning comments of #{issue_number}") as session:
            repository_id = self._repository_id(session, repository)
            stored = session.scalars(
                select(CommentRow.id).where(
                    CommentRow.repository_id == repository_id,
                    CommentRow.issue_number == issue_number,
                )
            ).all()
            stale = sorted(set(stored) - keep)

            for chunk in self._chunks(stale):
                session.execute(
                    delete(CommentRow).where(
                        CommentRow.repository_id == repository_id,
                        CommentRow.id.in_(chunk),
                    )
                )

        if stale:
            self.logger.debug(f"Removed {len(stale)} deleted comments from {repository}#{issue_number}")
        return len(stale)

    def set_watermark(self, repository: RepositoryRef, timestamp: datetime) -> datetime:
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)

        with self._write(repository, "advancing watermark") as session:
            repository_id = self._repository_id(session, repository)
            row = session.get(RepositoryRow, repository_id)

            if row.watermark is not None and timestamp < row.watermark:
                self.logger.warning(
                    f"Refusing to move watermark of {repository} backwards "
                    f"({row.watermark.isoformat()} -> {timestamp.isoformat()})"
                )
                return row.watermark

            row.watermark = timestamp
            return timestamp

    def clear(self, repository: RepositoryRef) -> None:
        """Drop every issue and comment of a repository and its watermark."""
        with self._write(repository, "clearing repository") as session:
            repository_id = self._repository_id(session, repository)
            session.execute(delete(IssueRow).where(IssueRow.repository_id == repository_id))
            session.get(RepositoryRow, repository_id).watermark = None

    # -------------------------------------------------------------------------
    # IssueStorePort Implementation - Read Operations
    # -------------------------------------------------------------------------

    def get_watermark(self, repository: RepositoryRef) -> Optional[datetime]:
        with self._read("reading watermark") as session:
            return session.scalar(
                select(RepositoryRow.watermark).where(
                    RepositoryRow.owner == repository.owner,
                    RepositoryRow.name == repository.name,
                )
            )

    def comment_count(self, repository: RepositoryRef, issue_number: int) -> int:
        with self._read("counting comments") as session:
            return session.scalar(
                select(func.count(CommentRow.id))
                .join(RepositoryRow, RepositoryRow.id == CommentRow.repository_id)
                .where(
                    RepositoryRow.owner == repository.owner,
                    RepositoryRow.name == repository.name,
                    CommentRow.issue_number == issue_number,
                )
            ) or 0

    def issue_count(self, repository: RepositoryRef) -> int:
        with self._read("counting issues") as session:
            return session.scalar(
                select(func.count(IssueRow.number))
                .join(RepositoryRow, RepositoryRow.id == IssueRow.repository_id)
                .where(
                    RepositoryRow.owner == repository.owner,
                    RepositoryRow.name == repository.name,
                )
            ) or 0

    def get_issue(self, repository: RepositoryRef, number: int) -> Optional[Issue]:
        with self._read(f"reading issue #{number}") as session:
            row = session.scalar(
                select(IssueRow)
                .join(RepositoryRow, RepositoryRow.id == IssueRow.repository_id)
                .where(
                    RepositoryRow.owner == repository.owner,
                    RepositoryRow.name == repository.name,
                    IssueRow.number == number,
                )
            )
            return self._to_issue(row) if row is not None else None

    def list_issues(self, repository: RepositoryRef) -> list[Issue]:
        with self._read("listing issues") as session:
            rows = session.scalars(
                select(IssueRow)
                .join(RepositoryRow, RepositoryRow.id == IssueRow.repository_id)
                .where(
                    RepositoryRow.owner == repository.owner,
                    RepositoryRow.name == repository.name,
                )
                .order_by(IssueRow.updated_at.desc(), IssueRow.number.desc())
            ).all()
            return [self._to_issue(row) for row in rows]

    def list_comments(self, repository: RepositoryRef, issue_number: int) -> list[Comment]:
        with self._read(f"listing comments of #{issue_number}") as session:
            rows = session.scalars(
                select(CommentRow)
                .join(RepositoryRow, RepositoryRow.id == CommentRow.repository_id)
                .where(
                    RepositoryRow.owner == repository.owner,
                    RepositoryRow.name == repository.name,
                    CommentRow.issue_number == issue_number,
                )
                .order_by(CommentRow.created_at.asc(), CommentRow.id.asc())
            ).all()
            return [self._to_comment(row) for row in rows]

    # -------------------------------------------------------------------------
    # IssueStorePort Implementation - Coordination
    # -------------------------------------------------------------------------

    @contextmanager
    def sync_lock(self, repository: RepositoryRef) -> Iterator[None]:
        """
        Claim the repository in the database itself.

        The claim is a lease on the repository row, so it holds across store
        instances and processes sharing the file. A lease older than
        ``lease_ttl`` is taken over.
        """
        owner = uuid.uuid4().hex
        self._claim(repository, owner)
        try:
            yield
        finally:
            self._release(repository, owner)

    def close(self) -> None:
        self.engine.dispose()

    # -------------------------------------------------------------------------
    # Private Methods
    # -------------------------------------------------------------------------

    @staticmethod
    def _to_url(location: Union[str, Path]) -> str:
        text = str(location)
        if "://" in text:
            return text
        return f"sqlite:///{text}"

    def _lock_for(self, repository: RepositoryRef) -> threading.RLock:
        with self._guard:
            if repository not in self._write_locks:
                self._write_locks[repository] = threading.RLock()
            return self._write_locks[repository]

    @contextmanager
    def _write(self, repository: RepositoryRef, action: str) -> Iterator[Session]:
        """One serialized transaction for one repository."""
        with self._lock_for(repository):
            with self._translate_errors(action):
                with self._sessions.begin() as session:
                    yield session

    @contextmanager
    def _read(self, action: str) -> Iterator[Session]:
        with self._translate_errors(action):
            with self._sessions() as session:
                yield session

    @contextmanager
    def _translate_errors(self, action: str) -> Iterator[None]:
        try:
            yield
        except DatabaseError as e:
            if _is_corruption(e):
                self.logger.error(f"Database corrupt while {action}: {e.orig}")
                raise StorageCorruptionError(f"Local database is corrupt ({action}): {e.orig}", cause=e)
            raise StorageError(f"Database error while {action}: {e.orig}", cause=e)
        except SQLAlchemyError as e:
            raise StorageError(f"Storage failure while {action}: {e}", cause=e)

    def _repository_id(self, session: Session, repository: RepositoryRef) -> int:
        """Look up (or create) the repository row inside ``session``."""
        cached = self._repository_ids.get(repository)
        if cached is not None and session.get(RepositoryRow, cached) is not None:
            return cached

        row = session.scalar(
            select(RepositoryRow).where(
                RepositoryRow.owner == repository.owner,
                RepositoryRow.name == repository.name,
            )
        )
        if row is None:
            row = RepositoryRow(owner=repository.owner, name=repository.name)
            session.add(row)
            session.flush()
            self.logger.debug(f"Registered repository {repository}")

        self._repository_ids[repository] = row.id
        return row.id

    def _claim(self, repository: RepositoryRef, owner: str) -> None:
        now = utcnow()
        cutoff = now - timedelta(seconds=self.lease_ttl)

        with self._write(repository, "claiming sync lease") as session:
            repository_id = self._repository_id(session, repository)
            result = session.execute(
                update(RepositoryRow)
                .where(
                    RepositoryRow.id == repository_id,
                    or_(
                        RepositoryRow.sync_owner.is_(None),
                        RepositoryRow.sync_started_at < cutoff,
                    ),
                )
                .values(sync_owner=owner, sync_started_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                return
            held_since = session.scalar(
                select(RepositoryRow.sync_started_at).where(RepositoryRow.id == repository_id)
            )

        since = held_since.isoformat() if held_since else "an unknown time"
        raise SyncInProgressError(f"A sync of {repository} is already running (since {since})")

    def _release(self, repository: RepositoryRef, owner: str) -> None:
        try:
            with self._write(repository, "releasing sync lease") as session:
                session.execute(
                    update(RepositoryRow)
                    .where(
                        RepositoryRow.owner == repository.owner,
                        RepositoryRow.name == repository.name,
                        RepositoryRow.sync_owner == owner,
                    )
                    .values(sync_owner=None, sync_started_at=None)
                    .execution_options(synchronize_session=False)
                )
        except StorageError as e:
            # Raising here would mask the outcome of the pass
            self.logger.warning(
                f"Could not release sync lease on {repository}, "
                f"it expires after {self.lease_ttl:.0f}s: {e}"
            )

    @staticmethod
    def _chunks(values: list[int]) -> Iterator[list[int]]:
        for start in range(0, len(values), DELETE_CHUNK_SIZE):
            yield values[start:start + DELETE_CHUNK_SIZE]

    @staticmethod
    def _to_issue(row: IssueRow) -> Issue:
        return Issue(
            number=row.number,
            title=row.title,
            body=row.body,
            state=row.state,
            author=row.author,
            created_at=row.created_at,
            updated_at=row.updated_at,
            comment_count=row.comment_count,
            labels=tuple(row.labels or ()),
            assignees=tuple(row.assignees or ()),
        )

    @staticmethod
    def _to_comment(row: CommentRow) -> Comment:
        return Comment(
            id=row.id,
            issue_number=row.issue_number,
            body=row.body,
            author=row.author,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
