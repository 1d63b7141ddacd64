"""
Storage Models - SQLAlchemy tables backing the local mirror.

One row per repository (owning the watermark), one row per (repository,
issue number), one row per (repository, comment id). Comments reference
their issue with ON DELETE CASCADE.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    ForeignKeyConstraint,
    Index,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator


Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetimes on top of SQLite's naive storage.

    Values are stored as naive UTC and come back tagged with UTC.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


class RepositoryRow(Base):
    """A mirrored repository and its synchronization watermark."""

    __tablename__ = "repositories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner = Column(Text, nullable=False)
    name = Column(Text, nullable=False)
    watermark = Column(
        UTCDateTime,
        nullable=True,
        comment="Start time of the last successful pass",
    )
    sync_owner = Column(Text, nullable=True, comment="Holder of the running pass")
    sync_started_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("owner", "name", name="uq_repositories_owner_name"),
    )


class IssueRow(Base):
    __tablename__ = "issues"

    repository_id = Column(
        Integer,
        ForeignKey("repositories.id", ondelete="CASCADE"),
        primary_key=True,
    )
    number = Column(Integer, primary_key=True)
    title = Column(Text, nullable=False, default="")
    body = Column(Text, nullable=False, default="")
    state = Column(Text, nullable=False)
    author = Column(Text, nullable=False)
    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False)
    comment_count = Column(Integer, nullable=False, default=0)
    labels = Column(JSON, nullable=False, default=list)
    assignees = Column(JSON, nullable=False, default=list)

    __table_args__ = (
        Index("ix_issues_repository_updated", "repository_id", "updated_at"),
    )


class CommentRow(Base):
    __tablename__ = "comments"

    repository_id = Column(Integer, primary_key=True)
    id = Column(BigInteger, primary_key=True, autoincrement=False)
    issue_number = Column(Integer, nullable=False)
    body = Column(Text, nullable=False, default="")
    author = Column(Text, nullable=False)
    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False)

    __table_args__ = (
        ForeignKeyConstraint(
            ["repository_id", "issue_number"],
            ["issues.repository_id", "issues.number"],
            ondelete="CASCADE",
        ),
        Index("ix_comments_issue", "repository_id", "issue_number"),
    )
