"""Turns detected changes into sync action queues."""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

from .comparator import ChangeDetector, DetectedChange
from .modes import ChangeType, Side
from .pair import SyncPair
from .scanner import ScannedFile
from .state import TrackedFile

logger = logging.getLogger(__name__)


@dataclass
class SyncPlan:
    """Action queues for one sync run, each sorted by relative path."""

    to_upload: list[DetectedChange] = field(default_factory=list)
    to_download: list[DetectedChange] = field(default_factory=list)
    to_delete_local: list[DetectedChange] = field(default_factory=list)
    to_delete_remote: list[DetectedChange] = field(default_factory=list)

    skipped_local_deletions: list[DetectedChange] = field(default_factory=list)
    """Local deletions not propagated because delete propagation is off"""

    skipped_remote_deletions: list[DetectedChange] = field(default_factory=list)
    """Remote deletions not propagated because delete propagation is off"""

    @property
    def total_actions(self) -> int:
        """Number of file actions the executor will perform."""
        return (
            len(self.to_upload)
            + len(self.to_download)
            + len(self.to_delete_local)
            + len(self.to_delete_remote)
        )

    @property
    def is_empty(self) -> bool:
        return self.total_actions == 0

    def to_preview_dict(self) -> dict[str, Any]:
        """The four action queues as a JSON-friendly dictionary."""

        def entries(changes: list[DetectedChange]) -> list[dict[str, Any]]:
            return [
                {
                    "path": c.relative_path,
                    "changeType": c.change_type.value,
                    "size": c.size,
                }
                for c in changes
            ]

        return {
            "toUpload": entries(self.to_upload),
            "toDownload": entries(self.to_download),
            "toDeleteLocal": entries(self.to_delete_local),
            "toDeleteRemote": entries(self.to_delete_remote),
        }


class SyncPlanner:
    """Builds a SyncPlan from both sides' snapshots and current scans.

    Only the source side of the pair's direction contributes actions; changes
    on the other side are ignored.
    """

    def __init__(self, detector: Optional[ChangeDetector] = None):
        self.detector = detector or ChangeDetector()

    def plan(
        self,
        pair: SyncPair,
        local_previous: Iterable[TrackedFile],
        remote_previous: Iterable[TrackedFile],
        local_current: Mapping[str, ScannedFile],
        remote_current: Mapping[str, ScannedFile],
        is_resync: bool = False,
    ) -> SyncPlan:
        """Compute the actions for a run.

        Args:
            pair: Sync pair
            local_previous: Tracked local records
            remote_previous: Tracked remote records
            local_current: Current local scan
            remote_current: Current remote scan
            is_resync: Treat both previous snapshots as empty

        Returns:
            SyncPlan with sorted queues
        """
        if is_resync:
            local_previous, remote_previous = [], []

        plan = SyncPlan()
        if pair.direction.source_side == Side.LOCAL:
            changes = self.detector.detect_changes(local_previous, local_current)
            for change in changes:
                if change.change_type in (ChangeType.NEW, ChangeType.MODIFIED):
                    plan.to_upload.append(change)
                elif change.change_type == ChangeType.DELETED:
                    if pair.delete_propagation:
                        plan.to_delete_remote.append(change)
                    else:
                        plan.skipped_local_deletions.append(change)
        else:
            changes = self.detector.detect_changes(remote_previous, remote_current)
            for change in changes:
                if change.change_type in (ChangeType.NEW, ChangeType.MODIFIED):
                    plan.to_download.append(change)
                elif change.change_type == ChangeType.DELETED:
                    if pair.delete_propagation:
                        plan.to_delete_local.append(change)
                    else:
                        plan.skipped_remote_deletions.append(change)

        logger.debug(
            "Plan for pair %d: %d upload(s), %d download(s), %d local delete(s), "
            "%d remote delete(s), %d skipped deletion(s)",
            pair.id,
            len(plan.to_upload),
            len(plan.to_download),
            len(plan.to_delete_local),
            len(plan.to_delete_remote),
            len(plan.skipped_local_deletions) + len(plan.skipped_remote_deletions),
        )
        return plan
