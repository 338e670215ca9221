"""Change detection for one side of a sync pair."""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Optional

from .modes import ChangeType
from .scanner import ScannedFile
from .state import TrackedFile

logger = logging.getLogger(__name__)


@dataclass
class DetectedChange:
    """A path whose state differs from the last committed snapshot."""

    relative_path: str
    """Relative path of the file"""

    change_type: ChangeType
    """How the file changed"""

    size: int
    """Current size, or the last known size for deletions"""

    mtime: Optional[int] = None
    """Current mtime in ms, or the last known one for deletions"""

    hash: Optional[str] = None
    """Content hash or etag, if known"""


class ChangeDetector:
    """Diffs a side's previous snapshot against its current scan.

    Only size and modification time are compared. Content hashes and etags
    are carried along but never used to classify a change.

    Examples:
        >>> detector = ChangeDetector()
        >>> changes = detector.detect_changes(previous=[], current=scanned)
        >>> all(c.change_type == ChangeType.NEW for c in changes)
        True
    """

    def detect_changes(
        self,
        previous: Iterable[TrackedFile],
        current: Mapping[str, ScannedFile],
    ) -> list[DetectedChange]:
        """Classify every changed path.

        Args:
            previous: Tracked records of this side, deleted ones included
            current: Current scan of this side, keyed by relative path

        Returns:
            New, modified and deleted paths sorted by relative path.
            Unchanged paths are left out.
        """
        previous_by_path = {f.relative_path: f for f in previous}
        changes: list[DetectedChange] = []

        if not previous_by_path:
            # First sync of this side: everything present is new
            changes = [
                self._from_scanned(scanned, ChangeType.NEW)
                for scanned in current.values()
            ]
            changes.sort(key=lambda c: c.relative_path)
            logger.debug("Bootstrap: %d new file(s)", len(changes))
            return changes

        for path, scanned in current.items():
            tracked = previous_by_path.get(path)
            if tracked is None or tracked.is_deleted:
                changes.append(self._from_scanned(scanned, ChangeType.NEW))
            elif tracked.size != scanned.size or tracked.mtime != scanned.mtime:
                changes.append(self._from_scanned(scanned, ChangeType.MODIFIED))

        for path, tracked in previous_by_path.items():
            if not tracked.is_deleted and path not in current:
                changes.append(
                    DetectedChange(
                        relative_path=path,
                        change_type=ChangeType.DELETED,
                        size=tracked.size,
                        mtime=tracked.mtime,
                        hash=tracked.hash,
                    )
                )

        changes.sort(key=lambda c: c.relative_path)
        return changes

    @staticmethod
    def _from_scanned(scanned: ScannedFile, change_type: ChangeType) -> DetectedChange:
        return DetectedChange(
            relative_path=scanned.relative_path,
            change_type=change_type,
            size=scanned.size,
            mtime=scanned.mtime,
            hash=scanned.hash,
        )
