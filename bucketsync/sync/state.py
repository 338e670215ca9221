"""State management for tracking sync history.

This module persists, per sync pair and per side, the last committed
observation of every file. Comparing that snapshot with a fresh scan is what
lets a sync detect modifications and deletions and transfer only what
changed since the previous run.

Rows for deleted files are kept with ``is_deleted=True`` instead of being
removed, so a file that reappears later is recognized as new rather than
confused with a file that was never touched.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.orm import Session, sessionmaker

from ..models import LocalFileRow, RemoteFileRow
from ..utils import now_ts
from .modes import Side

logger = logging.getLogger(__name__)

FileRow = Union[LocalFileRow, RemoteFileRow]


@dataclass
class TrackedFile:
    """Last committed state of one path on one side of a sync pair."""

    relative_path: str
    """Path relative to the local root / remote prefix, with forward slashes"""

    size: int
    """Size in bytes"""

    mtime: Optional[int] = None
    """Local mtime or remote last-modified, in Unix milliseconds"""

    hash: Optional[str] = None
    """Content hash (local) or etag (remote), if known"""

    is_deleted: bool = False
    """True once the path is known to be gone from this side"""

    last_seen_at: int = 0
    """Unix timestamp of the last write to this record"""


def _model_for(side: Side) -> type[FileRow]:
    return LocalFileRow if side == Side.LOCAL else RemoteFileRow


def _row_to_tracked(row: FileRow) -> TrackedFile:
    if isinstance(row, LocalFileRow):
        mtime, file_hash = row.mtime_ms, row.content_hash
    else:
        mtime, file_hash = row.last_modified_ms, row.etag
    return TrackedFile(
        relative_path=row.relative_path,
        size=row.size,
        mtime=mtime,
        hash=file_hash,
        is_deleted=row.is_deleted,
        last_seen_at=row.last_seen_at,
    )


class StateStore:
    """Persists tracked file snapshots for sync pairs.

    Every method runs in its own short transaction. There is deliberately no
    run-wide transaction: a crash mid-sync leaves exactly the records of the
    actions that already succeeded.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def get_files(self, pair_id: int, side: Side) -> list[TrackedFile]:
        """All tracked records for one side of a pair, including deleted ones."""
        model = _model_for(side)
        stmt = (
            select(model)
            .where(model.sync_pair_id == pair_id)
            .order_by(model.relative_path)
        )
        with self._session_factory() as session:
            files = [_row_to_tracked(row) for row in session.scalars(stmt)]
        logger.debug(
            "Loaded %d tracked %s file(s) for pair %d", len(files), side.value, pair_id
        )
        return files

    def save_file(
        self,
        pair_id: int,
        side: Side,
        relative_path: str,
        size: int,
        mtime: Optional[int] = None,
        file_hash: Optional[str] = None,
    ) -> None:
        """Insert or update the record for a path and clear its deleted flag.

        Args:
            pair_id: Sync pair id
            side: Which side the observation belongs to
            relative_path: Path relative to the pair root
            size: Size in bytes
            mtime: Modification time in Unix milliseconds
            file_hash: Content hash (local) or etag (remote)
        """
        if side == Side.LOCAL:
            values = {"mtime_ms": mtime, "content_hash": file_hash}
        else:
            values = {"last_modified_ms": mtime, "etag": file_hash}
        values.update(size=size, is_deleted=False, last_seen_at=now_ts())

        model = _model_for(side)
        stmt = insert(model).values(
            sync_pair_id=pair_id, relative_path=relative_path, **values
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[model.sync_pair_id, model.relative_path],
            set_=values,
        )
        with self._session_factory() as session:
            session.execute(stmt)
            session.commit()

    def mark_deleted(self, pair_id: int, side: Side, relative_path: str) -> None:
        """Flag a path as deleted on one side. Unknown paths are ignored."""
        model = _model_for(side)
        stmt = (
            update(model)
            .where(
                model.sync_pair_id == pair_id,
                model.relative_path == relative_path,
            )
            .values(is_deleted=True, last_seen_at=now_ts())
        )
        with self._session_factory() as session:
            session.execute(stmt)
            session.commit()

    def clear(self, pair_id: int) -> None:
        """Forget all tracked state of a pair (both sides), as for a resync."""
        with self._session_factory() as session:
            for model in (LocalFileRow, RemoteFileRow):
                session.execute(delete(model).where(model.sync_pair_id == pair_id))
            session.commit()
        logger.debug("Cleared tracked state for pair %d", pair_id)
