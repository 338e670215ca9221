"""Object-storage client interface and its S3 implementation.

The sync engine only depends on :class:`StorageClient`. :class:`S3StorageClient`
implements it on top of boto3 and works with AWS S3 as well as S3-compatible
services (Cloudflare R2, MinIO, ...). Retries and backoff are left to
botocore's retry configuration.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional, Protocol

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .config import AccountConfig, Config
from .exceptions import StorageError

logger = logging.getLogger(__name__)

# Error codes S3-compatible services return for a missing object
NOT_FOUND_ERROR_CODES = frozenset({"NoSuchKey", "404", "NotFound"})

DEFAULT_MAX_ATTEMPTS = 5


@dataclass
class ObjectInfo:
    """One entry of a bucket listing."""

    key: str
    """Full object key"""

    size: int
    """Object size in bytes"""

    last_modified: Optional[datetime] = None
    """Last modification time reported by the service"""

    etag: Optional[str] = None
    """Entity tag without surrounding quotes"""


@dataclass
class ListObjectsPage:
    """One page of a bucket listing."""

    entries: list[ObjectInfo] = field(default_factory=list)
    next_token: Optional[str] = None
    is_truncated: bool = False


class StorageClient(Protocol):
    """Operations the sync engine needs from an object store.

    ``get_object`` returns ``None`` when the object does not exist; every
    other failure raises :class:`StorageError`.
    """

    def list_objects(
        self, bucket: str, prefix: str, continuation_token: Optional[str] = None
    ) -> ListObjectsPage: ...

    def get_object(self, bucket: str, key: str) -> Optional[bytes]: ...

    def put_object(self, bucket: str, key: str, body: bytes) -> None: ...

    def delete_object(self, bucket: str, key: str) -> None: ...


def _strip_etag(etag: Optional[str]) -> Optional[str]:
    if etag is None:
        return None
    return etag.strip('"')


class S3StorageClient:
    """StorageClient backed by a boto3 S3 client."""

    def __init__(
        self,
        endpoint_url: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        region: Optional[str] = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        s3_client=None,
    ):
        """Initialize the S3 storage client.

        Args:
            endpoint_url: Custom endpoint for S3-compatible services
            access_key_id: Access key (default credential chain if None)
            secret_access_key: Secret key
            region: Region name
            max_attempts: Total attempts per request, handled by botocore
            s3_client: Pre-built boto3 client (mainly for tests)
        """
        if s3_client is None:
            session = boto3.session.Session(
                aws_access_key_id=access_key_id,
                aws_secret_access_key=secret_access_key,
                region_name=region,
            )
            s3_client = session.client(
                "s3",
                endpoint_url=endpoint_url,
                config=BotoConfig(
                    retries={"max_attempts": max_attempts, "mode": "standard"},
                    # Path-style addressing is required by R2 and MinIO
                    s3={"addressing_style": "path"},
                ),
            )
        self._s3 = s3_client

    @classmethod
    def from_account(cls, account: AccountConfig) -> "S3StorageClient":
        """Create a client from a configured account."""
        return cls(
            endpoint_url=account.endpoint_url,
            access_key_id=account.access_key_id,
            secret_access_key=account.secret_access_key,
            region=account.region,
        )

    def list_objects(
        self, bucket: str, prefix: str, continuation_token: Optional[str] = None
    ) -> ListObjectsPage:
        """List one page of objects under a prefix."""
        kwargs = {"Bucket": bucket}
        if prefix:
            kwargs["Prefix"] = prefix
        if continuation_token:
            kwargs["ContinuationToken"] = continuation_token

        try:
            response = self._s3.list_objects_v2(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to list s3://{bucket}/{prefix}: {e}") from e

        entries = [
            ObjectInfo(
                key=obj["Key"],
                size=obj.get("Size", 0),
                last_modified=obj.get("LastModified"),
                etag=_strip_etag(obj.get("ETag")),
            )
            for obj in response.get("Contents", [])
        ]
        return ListObjectsPage(
            entries=entries,
            next_token=response.get("NextContinuationToken"),
            is_truncated=bool(response.get("IsTruncated", False)),
        )

    def get_object(self, bucket: str, key: str) -> Optional[bytes]:
        """Fetch an object's bytes, or None if it does not exist."""
        try:
            response = self._s3.get_object(Bucket=bucket, Key=key)
            return response["Body"].read()
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in NOT_FOUND_ERROR_CODES:
                return None
            raise StorageError(f"Failed to get s3://{bucket}/{key}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to get s3://{bucket}/{key}: {e}") from e

    def put_object(self, bucket: str, key: str, body: bytes) -> None:
        """Write an object."""
        try:
            self._s3.put_object(Bucket=bucket, Key=key, Body=body)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to put s3://{bucket}/{key}: {e}") from e

    def delete_object(self, bucket: str, key: str) -> None:
        """Delete an object. Deleting a missing key is not an error in S3."""
        try:
            self._s3.delete_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to delete s3://{bucket}/{key}: {e}") from e


class S3ClientManager:
    """Creates storage clients per account and caches them."""

    def __init__(
        self,
        app_config: Config,
        client_factory: Callable[[AccountConfig], StorageClient] = (
            S3StorageClient.from_account
        ),
    ):
        self._config = app_config
        self._client_factory = client_factory
        self._clients: dict[str, StorageClient] = {}
        self._lock = threading.Lock()

    def get_client(self, account_id: str) -> StorageClient:
        """Return the cached client for an account, creating it if needed.

        Raises:
            ConfigurationError: If the account is not configured
        """
        with self._lock:
            client = self._clients.get(account_id)
            if client is None:
                account = self._config.get_account(account_id)
                logger.debug("Creating storage client for account %s", account_id)
                client = self._client_factory(account)
                self._clients[account_id] = client
            return client
