"""Sync pair configuration objects."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

from ..utils import normalize_prefix
from .modes import SyncDirection, SyncPairStatus


@dataclass
class NewSyncPair:
    """Input for creating a sync pair.

    Paths and modes are normalized on creation, so ``remote_prefix="/docs/"``
    becomes ``"docs"`` and ``direction="push"`` becomes
    ``SyncDirection.UPLOAD_ONLY``.

    Examples:
        >>> pair = NewSyncPair(
        ...     name="photos",
        ...     local_path="/home/user/Pictures",
        ...     account_id="r2-main",
        ...     bucket="backups",
        ...     remote_prefix="/photos/",
        ...     direction="push",
        ... )
        >>> pair.remote_prefix
        'photos'
    """

    name: str
    local_path: Union[Path, str]
    account_id: str
    bucket: str
    remote_prefix: str = ""
    direction: Union[SyncDirection, str] = SyncDirection.UPLOAD_ONLY
    delete_propagation: bool = True

    def __post_init__(self) -> None:
        if isinstance(self.local_path, str):
            self.local_path = Path(self.local_path)
        self.local_path = self.local_path.expanduser()
        if isinstance(self.direction, str) and not isinstance(
            self.direction, SyncDirection
        ):
            self.direction = SyncDirection.from_string(self.direction)
        self.remote_prefix = normalize_prefix(self.remote_prefix)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NewSyncPair":
        """Create a NewSyncPair from a camelCase dictionary.

        Raises:
            ValueError: If required fields are missing
        """
        required = ["name", "localPath", "accountId", "bucket"]
        missing = [key for key in required if key not in data]
        if missing:
            raise ValueError(f"Missing required fields: {', '.join(missing)}")

        return cls(
            name=data["name"],
            local_path=data["localPath"],
            account_id=data["accountId"],
            bucket=data["bucket"],
            remote_prefix=data.get("remotePrefix", ""),
            direction=data.get("syncDirection", SyncDirection.UPLOAD_ONLY),
            delete_propagation=data.get("deletePropagation", True),
        )


@dataclass
class SyncPair:
    """A stored sync pair."""

    id: int
    name: str
    local_path: Path
    account_id: str
    bucket: str
    remote_prefix: str
    direction: SyncDirection
    delete_propagation: bool
    status: SyncPairStatus
    created_at: int
    last_sync_at: Optional[int] = None
    last_error: Optional[str] = None

    @property
    def remote_display(self) -> str:
        """Bucket and prefix as a URL-like string."""
        if self.remote_prefix:
            return f"{self.bucket}/{self.remote_prefix}"
        return self.bucket

    def to_dict(self) -> dict[str, Any]:
        """Convert to a camelCase dictionary for JSON output."""
        return {
            "id": self.id,
            "name": self.name,
            "localPath": str(self.local_path),
            "accountId": self.account_id,
            "bucket": self.bucket,
            "remotePrefix": self.remote_prefix,
            "syncDirection": self.direction.value,
            "deletePropagation": self.delete_propagation,
            "status": self.status.value,
            "lastSyncAt": self.last_sync_at,
            "lastError": self.last_error,
            "createdAt": self.created_at,
        }

    def __str__(self) -> str:
        arrow = "->" if self.direction == SyncDirection.UPLOAD_ONLY else "<-"
        return f"{self.name}: {self.local_path} {arrow} {self.remote_display}"
