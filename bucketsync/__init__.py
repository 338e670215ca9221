"""bucketsync - one-way sync between local directories and object storage."""

from .exceptions import (
    AlreadyRunningError,
    BucketSyncError,
    ConfigurationError,
    StorageError,
    SyncCancelledError,
    TransferError,
)
from .storage import S3ClientManager, S3StorageClient, StorageClient
from .sync import NewSyncPair, SyncDirection, SyncOrchestrator, SyncPair

__version__ = "0.1.0"

__all__ = [
    "SyncOrchestrator",
    "NewSyncPair",
    "SyncPair",
    "SyncDirection",
    "StorageClient",
    "S3StorageClient",
    "S3ClientManager",
    "BucketSyncError",
    "ConfigurationError",
    "AlreadyRunningError",
    "StorageError",
    "TransferError",
    "SyncCancelledError",
]
