"""SQLAlchemy ORM models for the sync state database."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Declarative base for all bucketsync tables."""


class SyncPairRow(Base):
    """Configured binding of a local directory to a bucket prefix."""

    __tablename__ = "sync_pairs"
    __table_args__ = (
        UniqueConstraint(
            "local_path", "account_id", "bucket", "remote_prefix",
            name="uq_sync_pairs_endpoints",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    local_path: Mapped[str] = mapped_column(Text, nullable=False)
    account_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    bucket: Mapped[str] = mapped_column(Text, nullable=False)
    remote_prefix: Mapped[str] = mapped_column(Text, nullable=False, default="")
    sync_direction: Mapped[str] = mapped_column(Text, nullable=False)
    delete_propagation: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    status: Mapped[str] = mapped_column(Text, nullable=False, default="idle")
    last_sync_at: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    owner: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    """Process running the sync while status is syncing"""
    created_at: Mapped[int] = mapped_column(Integer, nullable=False)

    local_files: Mapped[list[LocalFileRow]] = relationship(
        cascade="all, delete-orphan", passive_deletes=True
    )
    remote_files: Mapped[list[RemoteFileRow]] = relationship(
        cascade="all, delete-orphan", passive_deletes=True
    )
    sessions: Mapped[list[SyncSessionRow]] = relationship(
        cascade="all, delete-orphan", passive_deletes=True
    )


class LocalFileRow(Base):
    """Last committed state of a file on the local side."""

    __tablename__ = "sync_local_files"
    __table_args__ = (UniqueConstraint("sync_pair_id", "relative_path"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sync_pair_id: Mapped[int] = mapped_column(
        ForeignKey("sync_pairs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    relative_path: Mapped[str] = mapped_column(Text, nullable=False)
    size: Mapped[int] = mapped_column(Integer, nullable=False)
    mtime_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    content_hash: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_seen_at: Mapped[int] = mapped_column(Integer, nullable=False)


class RemoteFileRow(Base):
    """Last committed state of an object on the remote side."""

    __tablename__ = "sync_remote_files"
    __table_args__ = (UniqueConstraint("sync_pair_id", "relative_path"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sync_pair_id: Mapped[int] = mapped_column(
        ForeignKey("sync_pairs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    relative_path: Mapped[str] = mapped_column(Text, nullable=False)
    size: Mapped[int] = mapped_column(Integer, nullable=False)
    last_modified_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    etag: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_seen_at: Mapped[int] = mapped_column(Integer, nullable=False)


class SyncSessionRow(Base):
    """Record of one sync run."""

    __tablename__ = "sync_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sync_pair_id: Mapped[int] = mapped_column(
        ForeignKey("sync_pairs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    started_at: Mapped[int] = mapped_column(Integer, nullable=False)
    completed_at: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False)
    files_uploaded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    files_downloaded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    files_deleted_local: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    files_deleted_remote: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    bytes_transferred: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    owner: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    """Process running the session while it is running"""
