"""CLI progress display for sync operations.

This module provides a Rich-based progress display fed by the progress
events of a running sync.
"""

import threading
from typing import Optional

from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from .sync.progress import SyncProgressEvent, SyncProgressInfo
from .utils import format_size

_PHASE_LABELS = {
    SyncProgressEvent.SCANNING: "Scanning",
    SyncProgressEvent.UPLOADING: "Uploading",
    SyncProgressEvent.DOWNLOADING: "Downloading",
    SyncProgressEvent.DELETING_LOCAL: "Deleting local",
    SyncProgressEvent.DELETING_REMOTE: "Deleting remote",
    SyncProgressEvent.COMPLETE: "Sync complete",
    SyncProgressEvent.CANCELLED: "Sync cancelled",
    SyncProgressEvent.ERROR: "Sync failed",
}

_TERMINAL_EVENTS = (
    SyncProgressEvent.COMPLETE,
    SyncProgressEvent.CANCELLED,
    SyncProgressEvent.ERROR,
)


class SyncProgressDisplay:
    """Rich-based progress display for a sync run.

    Use :meth:`handle_event` as the orchestrator's progress callback. Events
    arrive on a worker thread; the last terminal event is kept in
    :attr:`final_event` so the caller can report the outcome.
    """

    def __init__(self) -> None:
        """Initialize the progress display."""
        self._progress: Optional[Progress] = None
        self._task: Optional[TaskID] = None
        self._lock = threading.Lock()
        self.final_event: Optional[SyncProgressInfo] = None

    def handle_event(self, info: SyncProgressInfo) -> None:
        """Handle a progress event from the tracker.

        Args:
            info: Progress information
        """
        with self._lock:
            if info.event in _TERMINAL_EVENTS:
                self.final_event = info

            if self._progress is None or self._task is None:
                return

            label = _PHASE_LABELS.get(info.event, info.phase)
            if info.current_file:
                label = f"{label}: {info.current_file}"

            if info.event in _TERMINAL_EVENTS:
                self._progress.update(
                    self._task,
                    description=label,
                    bytes_info=format_size(info.bytes_transferred),
                )
                return

            self._progress.update(
                self._task,
                description=label,
                total=info.total_files or None,
                completed=info.files_processed,
                bytes_info=format_size(info.bytes_transferred),
            )

    def __enter__(self) -> "SyncProgressDisplay":
        """Enter context manager - start progress display."""
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TextColumn("[cyan]{task.fields[bytes_info]}"),
            TimeElapsedColumn(),
            refresh_per_second=4,
        )
        self._progress.__enter__()
        self._task = self._progress.add_task(
            "Preparing sync...", total=None, bytes_info="0 B"
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager - stop progress display."""
        with self._lock:
            if self._progress is not None:
                self._progress.__exit__(exc_type, exc_val, exc_tb)
                self._progress = None
                self._task = None
