"""Core sync engine for executing sync plans."""

import logging
import threading
import time
from typing import Callable, Optional

from ..exceptions import SyncCancelledError
from .comparator import DetectedChange
from .modes import Side
from .operations import SyncOperations
from .pair import SyncPair
from .planner import SyncPlan
from .progress import SyncProgressEvent, SyncProgressInfo, SyncProgressTracker
from .sessions import SessionTracker
from .state import StateStore

logger = logging.getLogger(__name__)


class SyncEngine:
    """Drains a SyncPlan one file at a time.

    Actions run strictly in this order: uploads, downloads, local deletes,
    remote deletes, then bookkeeping for deletions that were not propagated.
    The cancel event is checked before every action; an action that has
    started always runs to completion.
    """

    def __init__(
        self,
        operations: SyncOperations,
        state_store: StateStore,
        sessions: Optional[SessionTracker] = None,
    ):
        """Initialize sync engine.

        Args:
            operations: Per-file action implementation
            state_store: Store used for skipped-deletion bookkeeping
            sessions: Receives counters after each action, if given
        """
        self.operations = operations
        self.state_store = state_store
        self.sessions = sessions

    def execute(
        self,
        pair: SyncPair,
        plan: SyncPlan,
        session_id: int,
        cancel_event: Optional[threading.Event] = None,
        tracker: Optional[SyncProgressTracker] = None,
        stats: Optional[dict] = None,
    ) -> dict:
        """Apply a plan.

        Args:
            pair: Sync pair
            plan: Actions to apply
            session_id: Session recording this run
            cancel_event: Cooperative cancellation flag
            tracker: Receives one event per processed file
            stats: Dictionary updated in place; a new one is created if None

        Returns:
            Dictionary with sync statistics

        Raises:
            SyncCancelledError: If cancellation was observed; ``stats`` holds
                what was applied before it
            TransferError: If an action fails
        """
        stats = stats if stats is not None else self.create_empty_stats()
        tracker = tracker or SyncProgressTracker()
        total = plan.total_actions
        start = time.monotonic()

        queues: list[
            tuple[
                list[DetectedChange],
                SyncProgressEvent,
                Callable[[SyncPair, DetectedChange, dict], None],
            ]
        ] = [
            (plan.to_upload, SyncProgressEvent.UPLOADING, self._upload),
            (plan.to_download, SyncProgressEvent.DOWNLOADING, self._download),
            (
                plan.to_delete_local,
                SyncProgressEvent.DELETING_LOCAL,
                self._delete_local,
            ),
            (
                plan.to_delete_remote,
                SyncProgressEvent.DELETING_REMOTE,
                self._delete_remote,
            ),
        ]

        for changes, event, action in queues:
            for change in changes:
                if cancel_event is not None and cancel_event.is_set():
                    logger.info(
                        "Sync of pair %d cancelled after %d/%d action(s)",
                        pair.id,
                        stats["processed"],
                        total,
                    )
                    raise SyncCancelledError("Sync cancelled")

                action(pair, change, stats)
                stats["processed"] += 1

                if self.sessions is not None:
                    self.sessions.update_progress(session_id, stats)
                tracker.emit(
                    SyncProgressInfo(
                        event=event,
                        pair_id=pair.id,
                        session_id=session_id,
                        current_file=change.relative_path,
                        files_processed=stats["processed"],
                        total_files=total,
                        bytes_transferred=stats["bytes_transferred"],
                    )
                )

        # Non-propagated deletions only update the source side's record
        for change in plan.skipped_local_deletions:
            self.state_store.mark_deleted(pair.id, Side.LOCAL, change.relative_path)
        for change in plan.skipped_remote_deletions:
            self.state_store.mark_deleted(pair.id, Side.REMOTE, change.relative_path)

        logger.debug(
            "Executed %d action(s) for pair %d in %.2fs",
            stats["processed"],
            pair.id,
            time.monotonic() - start,
        )
        return stats

    def _upload(self, pair: SyncPair, change: DetectedChange, stats: dict) -> None:
        stats["bytes_transferred"] += self.operations.upload_file(pair, change)
        stats["uploads"] += 1

    def _download(self, pair: SyncPair, change: DetectedChange, stats: dict) -> None:
        written = self.operations.download_file(pair, change)
        if written is None:
            stats["skips"] += 1
            return
        stats["bytes_transferred"] += written
        stats["downloads"] += 1

    def _delete_local(
        self, pair: SyncPair, change: DetectedChange, stats: dict
    ) -> None:
        self.operations.delete_local(pair, change)
        stats["deletes_local"] += 1

    def _delete_remote(
        self, pair: SyncPair, change: DetectedChange, stats: dict
    ) -> None:
        self.operations.delete_remote(pair, change)
        stats["deletes_remote"] += 1

    @staticmethod
    def create_empty_stats() -> dict:
        """Create an empty statistics dictionary.

        Returns:
            Dictionary with zero counts for all stat categories
        """
        return {
            "uploads": 0,
            "downloads": 0,
            "deletes_local": 0,
            "deletes_remote": 0,
            "skips": 0,
            "processed": 0,
            "bytes_transferred": 0,
        }
