"""Progress events emitted by a running sync."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class SyncProgressEvent(str, Enum):
    """Kinds of progress events."""

    SCANNING = "scanning"
    UPLOADING = "uploading"
    DOWNLOADING = "downloading"
    DELETING_LOCAL = "deleting_local"
    DELETING_REMOTE = "deleting_remote"
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    ERROR = "error"


@dataclass
class SyncProgressInfo:
    """Snapshot of a sync run's progress."""

    event: SyncProgressEvent
    pair_id: int
    session_id: int

    current_file: str = ""
    """Relative path of the file being processed"""

    files_processed: int = 0
    """Files finished so far in this run, race skips included"""

    total_files: int = 0
    """Total file actions planned for this run"""

    bytes_transferred: int = 0

    error: Optional[str] = None
    """Error message for ``ERROR`` events"""

    stats: dict[str, int] = field(default_factory=dict)
    """Final statistics for terminal events"""

    @property
    def phase(self) -> str:
        return self.event.value


class SyncProgressTracker:
    """Delivers progress events to a callback.

    Delivery is best-effort: an exception raised by the callback is logged
    and never reaches the sync.
    """

    def __init__(self, callback: Optional[Callable[[SyncProgressInfo], None]] = None):
        self.callback = callback

    def emit(self, info: SyncProgressInfo) -> None:
        if self.callback is None:
            return
        try:
            self.callback(info)
        except Exception as e:
            logger.warning("Progress callback failed: %s", e)
