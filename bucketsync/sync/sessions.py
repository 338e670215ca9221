"""Session tracking: one run record per sync invocation."""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from ..models import SyncSessionRow
from ..utils import is_owner_alive, now_ts
from .modes import SyncSessionStatus

logger = logging.getLogger(__name__)

DEFAULT_SESSION_LIMIT = 20


@dataclass
class SyncSession:
    """Record of one sync run."""

    id: int
    sync_pair_id: int
    started_at: int
    status: SyncSessionStatus
    completed_at: Optional[int] = None
    files_uploaded: int = 0
    files_downloaded: int = 0
    files_deleted_local: int = 0
    files_deleted_remote: int = 0
    bytes_transferred: int = 0
    error_message: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a camelCase dictionary for JSON output."""
        return {
            "id": self.id,
            "syncPairId": self.sync_pair_id,
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
            "status": self.status.value,
            "filesUploaded": self.files_uploaded,
            "filesDownloaded": self.files_downloaded,
            "filesDeletedLocal": self.files_deleted_local,
            "filesDeletedRemote": self.files_deleted_remote,
            "bytesTransferred": self.bytes_transferred,
            "errorMessage": self.error_message,
        }


def _row_to_session(row: SyncSessionRow) -> SyncSession:
    return SyncSession(
        id=row.id,
        sync_pair_id=row.sync_pair_id,
        started_at=row.started_at,
        status=SyncSessionStatus(row.status),
        completed_at=row.completed_at,
        files_uploaded=row.files_uploaded,
        files_downloaded=row.files_downloaded,
        files_deleted_local=row.files_deleted_local,
        files_deleted_remote=row.files_deleted_remote,
        bytes_transferred=row.bytes_transferred,
        error_message=row.error_message,
    )


class SessionTracker:
    """Creates and finalizes sync session records.

    A session starts ``running`` and ends ``completed``, ``failed`` or
    ``cancelled``. Every update is conditional on the row still being
    running, so a terminal session is never modified again.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def create(self, pair_id: int, owner: Optional[str] = None) -> int:
        """Open a running session for a pair and return its id.

        Args:
            pair_id: Pair being synced
            owner: Process running the session, as returned by
                :func:`~bucketsync.utils.current_owner`
        """
        row = SyncSessionRow(
            sync_pair_id=pair_id,
            started_at=now_ts(),
            status=SyncSessionStatus.RUNNING.value,
            owner=owner,
        )
        with self._session_factory() as session:
            session.add(row)
            session.commit()
            logger.debug("Started session %d for pair %d", row.id, pair_id)
            return row.id

    def get(self, session_id: int) -> Optional[SyncSession]:
        """Get a session by id, or None if it does not exist."""
        with self._session_factory() as session:
            row = session.get(SyncSessionRow, session_id)
            return _row_to_session(row) if row else None

    def update_progress(self, session_id: int, stats: dict[str, int]) -> None:
        """Write the current counters of a running session.

        Args:
            session_id: Session id
            stats: Executor statistics (``uploads``, ``downloads``,
                ``deletes_local``, ``deletes_remote``, ``bytes_transferred``)
        """
        self._update_running(session_id, **self._counter_values(stats))

    def complete(self, session_id: int, stats: Optional[dict[str, int]] = None) -> None:
        """Finalize a session as completed."""
        self._finish(session_id, SyncSessionStatus.COMPLETED, stats)

    def fail(
        self,
        session_id: int,
        error: str,
        stats: Optional[dict[str, int]] = None,
    ) -> None:
        """Finalize a session as failed with an error message."""
        self._finish(session_id, SyncSessionStatus.FAILED, stats, error_message=error)

    def cancel(self, session_id: int, stats: Optional[dict[str, int]] = None) -> None:
        """Finalize a session as cancelled."""
        self._finish(session_id, SyncSessionStatus.CANCELLED, stats)

    def list_sessions(
        self, pair_id: int, limit: int = DEFAULT_SESSION_LIMIT
    ) -> list[SyncSession]:
        """Most recent sessions of a pair, newest first."""
        stmt = (
            select(SyncSessionRow)
            .where(SyncSessionRow.sync_pair_id == pair_id)
            .order_by(SyncSessionRow.started_at.desc(), SyncSessionRow.id.desc())
            .limit(limit)
        )
        with self._session_factory() as session:
            return [_row_to_session(row) for row in session.scalars(stmt)]

    def recover_interrupted(self) -> int:
        """Fail sessions left running by a process that died mid-sync.

        Sessions whose owner is still running are not touched.

        Returns:
            Number of recovered sessions
        """
        count = 0
        running = SyncSessionStatus.RUNNING.value
        with self._session_factory() as session:
            rows = session.execute(
                select(SyncSessionRow.id, SyncSessionRow.owner).where(
                    SyncSessionRow.status == running
                )
            ).all()
            for session_id, owner in rows:
                if is_owner_alive(owner):
                    continue
                result = session.execute(
                    update(SyncSessionRow)
                    .where(
                        SyncSessionRow.id == session_id,
                        SyncSessionRow.status == running,
                    )
                    .values(
                        status=SyncSessionStatus.FAILED.value,
                        completed_at=now_ts(),
                        error_message="interrupted",
                        owner=None,
                    )
                )
                count += result.rowcount or 0
            session.commit()
        if count:
            logger.warning("Marked %d interrupted session(s) as failed", count)
        return count

    @staticmethod
    def _counter_values(stats: Optional[dict[str, int]]) -> dict[str, int]:
        if not stats:
            return {}
        return {
            "files_uploaded": stats.get("uploads", 0),
            "files_downloaded": stats.get("downloads", 0),
            "files_deleted_local": stats.get("deletes_local", 0),
            "files_deleted_remote": stats.get("deletes_remote", 0),
            "bytes_transferred": stats.get("bytes_transferred", 0),
        }

    def _finish(
        self,
        session_id: int,
        status: SyncSessionStatus,
        stats: Optional[dict[str, int]],
        error_message: Optional[str] = None,
    ) -> None:
        values: dict[str, Any] = self._counter_values(stats)
        values.update(status=status.value, completed_at=now_ts(), owner=None)
        if error_message is not None:
            values["error_message"] = error_message
        if self._update_running(session_id, **values):
            logger.debug("Session %d finished: %s", session_id, status.value)
        else:
            logger.warning(
                "Session %d is already finished, not marking it %s",
                session_id,
                status.value,
            )

    def _update_running(self, session_id: int, **values) -> bool:
        if not values:
            return False
        stmt = (
            update(SyncSessionRow)
            .where(
                SyncSessionRow.id == session_id,
                SyncSessionRow.status == SyncSessionStatus.RUNNING.value,
            )
            .values(**values)
        )
        with self._session_factory() as session:
            result = session.execute(stmt)
            session.commit()
            return bool(result.rowcount)
