"""Directory and bucket scanning utilities for sync operations."""

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..exceptions import StorageError, SyncCancelledError
from ..storage import StorageClient
from ..utils import datetime_to_millis, is_safe_relative_path
from .pair import SyncPair

logger = logging.getLogger(__name__)


@dataclass
class ScannedFile:
    """Current state of one file as seen by a scan."""

    relative_path: str
    """Relative path (using forward slashes for cross-platform compatibility)"""

    size: int
    """File size in bytes"""

    mtime: Optional[int] = None
    """Modification time in Unix milliseconds (remote: last-modified)"""

    hash: Optional[str] = None
    """Etag for remote objects; not computed for local files"""


class DirectoryScanner:
    """Produces the current state of both sides of a sync pair.

    Examples:
        >>> scanner = DirectoryScanner()
        >>> local = scanner.scan_local(Path("/home/user/documents"))
        >>> for rel_path, f in local.items():
        ...     print(rel_path, f.size)
    """

    def scan_local(self, root: Path) -> dict[str, ScannedFile]:
        """Recursively scan a local directory.

        Args:
            root: Directory to scan

        Returns:
            Mapping of relative path to ScannedFile

        Raises:
            StorageError: If the root does not exist, is not a directory, or a
                directory inside it cannot be read
        """
        if not root.exists():
            raise StorageError(f"Local path does not exist: {root}")
        if not root.is_dir():
            raise StorageError(f"Local path is not a directory: {root}")

        start = time.monotonic()
        files: dict[str, ScannedFile] = {}
        self._walk(root, root, files)
        logger.debug(
            "Scanned %d local file(s) in %s (%.2fs)",
            len(files),
            root,
            time.monotonic() - start,
        )
        return files

    def _walk(self, directory: Path, root: Path, files: dict[str, ScannedFile]) -> None:
        try:
            items = list(directory.iterdir())
        except OSError as e:
            raise StorageError(f"Cannot read directory {directory}: {e}") from e

        for item in items:
            if item.is_dir():
                self._walk(item, root, files)
            elif item.is_file():
                try:
                    stat = item.stat()
                except OSError as e:
                    raise StorageError(f"Cannot stat {item}: {e}") from e
                # as_posix() keeps forward slashes on all platforms
                relative_path = item.relative_to(root).as_posix()
                files[relative_path] = ScannedFile(
                    relative_path=relative_path,
                    size=stat.st_size,
                    mtime=stat.st_mtime_ns // 1_000_000,
                )

    def scan_remote(
        self,
        client: StorageClient,
        bucket: str,
        prefix: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> dict[str, ScannedFile]:
        """List every object under a bucket prefix.

        Args:
            client: Storage client
            bucket: Bucket name
            prefix: Normalized prefix (no leading/trailing slash), may be empty
            cancel_event: Checked before each listing page

        Returns:
            Mapping of path relative to the prefix to ScannedFile

        Raises:
            SyncCancelledError: If cancellation was requested during listing
            StorageError: If listing fails
        """
        list_prefix = f"{prefix}/" if prefix else ""
        start = time.monotonic()
        files: dict[str, ScannedFile] = {}
        token: Optional[str] = None
        pages = 0

        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise SyncCancelledError("Cancelled while listing remote objects")

            page = client.list_objects(bucket, list_prefix, token)
            pages += 1
            for obj in page.entries:
                relative_path = obj.key[len(prefix):].lstrip("/")
                # Directory placeholders and the prefix marker itself
                if not relative_path or obj.key.endswith("/"):
                    continue
                if not is_safe_relative_path(relative_path):
                    logger.warning("Skipping unsafe remote key: %s", obj.key)
                    continue
                files[relative_path] = ScannedFile(
                    relative_path=relative_path,
                    size=obj.size,
                    mtime=datetime_to_millis(obj.last_modified),
                    hash=obj.etag.strip('"') if obj.etag else None,
                )

            if not page.is_truncated or not page.next_token:
                break
            token = page.next_token

        logger.debug(
            "Listed %d remote object(s) in s3://%s/%s over %d page(s) (%.2fs)",
            len(files),
            bucket,
            list_prefix,
            pages,
            time.monotonic() - start,
        )
        return files

    def scan_current_state(
        self,
        pair: SyncPair,
        client: StorageClient,
        cancel_event: Optional[threading.Event] = None,
    ) -> tuple[dict[str, ScannedFile], dict[str, ScannedFile]]:
        """Scan both sides of a pair.

        Returns:
            Tuple of (local files, remote files)
        """
        local = self.scan_local(pair.local_path)
        remote = self.scan_remote(
            client, pair.bucket, pair.remote_prefix, cancel_event=cancel_event
        )
        return local, remote
