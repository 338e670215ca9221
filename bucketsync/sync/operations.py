"""Per-file sync actions with state write-through."""

import logging
import time
from pathlib import Path
from typing import Optional

from ..exceptions import StorageError, TransferError
from ..storage import StorageClient
from ..utils import build_remote_key, file_mtime_millis
from .comparator import DetectedChange
from .modes import Side
from .pair import SyncPair
from .state import StateStore

logger = logging.getLogger(__name__)


class SyncOperations:
    """Applies single sync actions and records their outcome.

    Each method either completes the action and commits the matching tracked
    state, or raises :class:`TransferError` without touching the state.
    """

    def __init__(self, client: StorageClient, state_store: StateStore):
        """Initialize sync operations.

        Args:
            client: Storage client for the pair's account
            state_store: Store receiving the tracked state of applied actions
        """
        self.client = client
        self.state_store = state_store

    def upload_file(self, pair: SyncPair, change: DetectedChange) -> int:
        """Upload a local file to the pair's bucket prefix.

        The remote record is saved with the uploaded size only; its etag and
        last-modified are picked up by the next scan.

        Returns:
            Number of bytes uploaded
        """
        local_path = pair.local_path / change.relative_path
        key = build_remote_key(pair.remote_prefix, change.relative_path)
        start = time.monotonic()
        try:
            body = local_path.read_bytes()
            self.client.put_object(pair.bucket, key, body)
        except (OSError, StorageError) as e:
            raise TransferError(
                f"Failed to upload {change.relative_path}: {e}", change.relative_path
            ) from e

        self.state_store.save_file(
            pair.id, Side.LOCAL, change.relative_path, change.size, mtime=change.mtime
        )
        self.state_store.save_file(
            pair.id, Side.REMOTE, change.relative_path, len(body)
        )
        logger.debug(
            "Uploaded %s -> s3://%s/%s (%d bytes, %.2fs)",
            local_path,
            pair.bucket,
            key,
            len(body),
            time.monotonic() - start,
        )
        return len(body)

    def download_file(
        self, pair: SyncPair, change: DetectedChange
    ) -> Optional[int]:
        """Download an object into the pair's local directory.

        Returns:
            Number of bytes written, or None if the object disappeared after the
            scan (nothing is written and no state changes)
        """
        local_path = pair.local_path / change.relative_path
        key = build_remote_key(pair.remote_prefix, change.relative_path)
        start = time.monotonic()
        try:
            body = self.client.get_object(pair.bucket, key)
            if body is None:
                logger.warning(
                    "Remote object vanished before download, skipping: s3://%s/%s",
                    pair.bucket,
                    key,
                )
                return None
            # Ensure parent directory exists
            local_path.parent.mkdir(parents=True, exist_ok=True)
            local_path.write_bytes(body)
            local_size = local_path.stat().st_size
            local_mtime = file_mtime_millis(local_path)
        except (OSError, StorageError) as e:
            raise TransferError(
                f"Failed to download {change.relative_path}: {e}", change.relative_path
            ) from e

        self.state_store.save_file(
            pair.id, Side.LOCAL, change.relative_path, local_size, mtime=local_mtime
        )
        self.state_store.save_file(
            pair.id,
            Side.REMOTE,
            change.relative_path,
            change.size,
            mtime=change.mtime,
            file_hash=change.hash,
        )
        logger.debug(
            "Downloaded s3://%s/%s -> %s (%d bytes, %.2fs)",
            pair.bucket,
            key,
            local_path,
            len(body),
            time.monotonic() - start,
        )
        return len(body)

    def delete_local(self, pair: SyncPair, change: DetectedChange) -> None:
        """Delete a local file. A file that is already gone is not an error."""
        local_path: Path = pair.local_path / change.relative_path
        try:
            local_path.unlink(missing_ok=True)
        except OSError as e:
            raise TransferError(
                f"Failed to delete local file {change.relative_path}: {e}",
                change.relative_path,
            ) from e
        self._mark_both_deleted(pair.id, change.relative_path)
        logger.debug("Deleted local file %s", local_path)

    def delete_remote(self, pair: SyncPair, change: DetectedChange) -> None:
        """Delete an object from the pair's bucket prefix."""
        key = build_remote_key(pair.remote_prefix, change.relative_path)
        try:
            self.client.delete_object(pair.bucket, key)
        except StorageError as e:
            raise TransferError(
                f"Failed to delete remote object {change.relative_path}: {e}",
                change.relative_path,
            ) from e
        self._mark_both_deleted(pair.id, change.relative_path)
        logger.debug("Deleted remote object s3://%s/%s", pair.bucket, key)

    def _mark_both_deleted(self, pair_id: int, relative_path: str) -> None:
        self.state_store.mark_deleted(pair_id, Side.LOCAL, relative_path)
        self.state_store.mark_deleted(pair_id, Side.REMOTE, relative_path)
