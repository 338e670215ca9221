"""Sync engine for bucketsync - one-way local directory / bucket sync."""

from .comparator import ChangeDetector, DetectedChange
from .engine import SyncEngine
from .modes import (
    ChangeType,
    Side,
    SyncDirection,
    SyncPairStatus,
    SyncSessionStatus,
)
from .operations import SyncOperations
from .orchestrator import SyncOrchestrator
from .pair import NewSyncPair, SyncPair
from .planner import SyncPlan, SyncPlanner
from .progress import SyncProgressEvent, SyncProgressInfo, SyncProgressTracker
from .registry import PairRegistry
from .scanner import DirectoryScanner, ScannedFile
from .sessions import SessionTracker, SyncSession
from .state import StateStore, TrackedFile

__all__ = [
    "SyncOrchestrator",
    "SyncEngine",
    "SyncOperations",
    "SyncDirection",
    "SyncPairStatus",
    "SyncSessionStatus",
    "ChangeType",
    "Side",
    "NewSyncPair",
    "SyncPair",
    "PairRegistry",
    "StateStore",
    "TrackedFile",
    "DirectoryScanner",
    "ScannedFile",
    "ChangeDetector",
    "DetectedChange",
    "SyncPlan",
    "SyncPlanner",
    "SessionTracker",
    "SyncSession",
    "SyncProgressEvent",
    "SyncProgressInfo",
    "SyncProgressTracker",
]
