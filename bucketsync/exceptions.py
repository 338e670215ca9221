"""Exception hierarchy for bucketsync."""


class BucketSyncError(Exception):
    """Base exception for all bucketsync errors."""


class ConfigurationError(BucketSyncError):
    """Raised for invalid configuration.

    Covers bad local paths, unknown pair ids or accounts, duplicate pair
    endpoints and unknown sync directions.
    """


class AlreadyRunningError(BucketSyncError):
    """Raised when a sync is started for a pair that is already syncing."""


class StorageError(BucketSyncError):
    """Raised when the filesystem or the object storage fails."""


class TransferError(StorageError):
    """Raised when applying a single sync action fails.

    Aborts the running sync. Actions applied before the failure stay applied.
    """

    def __init__(self, message: str, relative_path: str = ""):
        super().__init__(message)
        self.relative_path = relative_path


class SyncCancelledError(BucketSyncError):
    """Raised inside a running sync when cancellation has been requested."""
