"""Sync direction and status enumerations."""

from enum import Enum

from ..exceptions import ConfigurationError


class SyncDirection(str, Enum):
    """Direction in which a sync pair transfers files.

    Sync is one-way: the source side is authoritative and the other side
    only ever receives changes.
    """

    UPLOAD_ONLY = "upload_only"
    """Local is the source; changes are pushed to the bucket"""

    DOWNLOAD_ONLY = "download_only"
    """Remote is the source; changes are pulled to the local directory"""

    @classmethod
    def from_string(cls, value: str) -> "SyncDirection":
        """Parse a direction from its value or a short alias.

        Args:
            value: ``upload_only``/``upload``/``push``/``uo`` or
                ``download_only``/``download``/``pull``/``do``

        Returns:
            Parsed SyncDirection

        Raises:
            ConfigurationError: If the value is not a known direction

        Examples:
            >>> SyncDirection.from_string("push")
            <SyncDirection.UPLOAD_ONLY: 'upload_only'>
        """
        normalized = value.strip().lower().replace("-", "_")
        aliases = {
            "upload": cls.UPLOAD_ONLY,
            "push": cls.UPLOAD_ONLY,
            "uo": cls.UPLOAD_ONLY,
            "download": cls.DOWNLOAD_ONLY,
            "pull": cls.DOWNLOAD_ONLY,
            "do": cls.DOWNLOAD_ONLY,
        }
        if normalized in aliases:
            return aliases[normalized]
        try:
            return cls(normalized)
        except ValueError:
            raise ConfigurationError(f"Unknown sync direction: {value}") from None

    @property
    def source_side(self) -> "Side":
        """Side whose changes drive the sync."""
        return Side.LOCAL if self == SyncDirection.UPLOAD_ONLY else Side.REMOTE


class SyncPairStatus(str, Enum):
    """Status of a sync pair."""

    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"


class SyncSessionStatus(str, Enum):
    """Status of a sync session."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ChangeType(str, Enum):
    """Classification of a path when diffing snapshots."""

    NEW = "new"
    MODIFIED = "modified"
    DELETED = "deleted"
    UNCHANGED = "unchanged"


class Side(str, Enum):
    """Which side of a pair a tracked file belongs to."""

    LOCAL = "local"
    REMOTE = "remote"
