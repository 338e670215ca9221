"""Shared fixtures for bucketsync tests."""

import hashlib
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import pytest

from bucketsync.database import create_db_engine
from bucketsync.storage import ListObjectsPage, ObjectInfo
from bucketsync.sync import (
    NewSyncPair,
    PairRegistry,
    SessionTracker,
    StateStore,
    SyncDirection,
    SyncOrchestrator,
)


class FakeStorage:
    """In-memory object store implementing the StorageClient protocol."""

    def __init__(self, page_size: int = 1000):
        self.page_size = page_size
        self.objects: dict[tuple[str, str], tuple[bytes, datetime, str]] = {}
        self.list_calls = 0
        self.put_calls: list[str] = []
        self.deleted: list[str] = []
        self._clock = datetime(2025, 1, 1, tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def put(
        self,
        bucket: str,
        key: str,
        body: bytes,
        last_modified: Optional[datetime] = None,
    ) -> None:
        """Place an object directly, as if another client had written it."""
        with self._lock:
            if last_modified is None:
                self._clock += timedelta(seconds=1)
                last_modified = self._clock
            etag = hashlib.md5(body).hexdigest()
            self.objects[(bucket, key)] = (body, last_modified, etag)

    def remove(self, bucket: str, key: str) -> None:
        with self._lock:
            self.objects.pop((bucket, key), None)

    def keys(self, bucket: str) -> list[str]:
        with self._lock:
            return sorted(k for b, k in self.objects if b == bucket)

    def list_objects(
        self, bucket: str, prefix: str, continuation_token: Optional[str] = None
    ) -> ListObjectsPage:
        with self._lock:
            self.list_calls += 1
            matching = sorted(
                (key, value)
                for (b, key), value in self.objects.items()
                if b == bucket and key.startswith(prefix)
            )
        start = int(continuation_token) if continuation_token else 0
        chunk = matching[start : start + self.page_size]
        end = start + len(chunk)
        truncated = end < len(matching)
        return ListObjectsPage(
            entries=[
                ObjectInfo(
                    key=key, size=len(body), last_modified=modified, etag=f'"{etag}"'
                )
                for key, (body, modified, etag) in chunk
            ],
            next_token=str(end) if truncated else None,
            is_truncated=truncated,
        )

    def get_object(self, bucket: str, key: str) -> Optional[bytes]:
        with self._lock:
            value = self.objects.get((bucket, key))
        return value[0] if value else None

    def put_object(self, bucket: str, key: str, body: bytes) -> None:
        self.put(bucket, key, body)
        self.put_calls.append(key)

    def delete_object(self, bucket: str, key: str) -> None:
        self.remove(bucket, key)
        self.deleted.append(key)


@pytest.fixture
def db(tmp_path):
    """Engine and session factory on a temporary SQLite file."""
    engine, session_factory = create_db_engine(f"sqlite:///{tmp_path / 'state.db'}")
    yield engine, session_factory
    engine.dispose()


@pytest.fixture
def session_factory(db):
    return db[1]


@pytest.fixture
def registry(session_factory):
    return PairRegistry(session_factory)


@pytest.fixture
def state_store(session_factory):
    return StateStore(session_factory)


@pytest.fixture
def sessions(session_factory):
    return SessionTracker(session_factory)


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def local_dir(tmp_path) -> Path:
    path = tmp_path / "local"
    path.mkdir()
    return path


@pytest.fixture
def orchestrator(registry, state_store, sessions, storage):
    orch = SyncOrchestrator(
        registry, state_store, sessions, lambda account_id: storage, max_workers=2
    )
    yield orch
    orch.shutdown()


@pytest.fixture
def make_pair(registry, local_dir):
    """Factory creating a pair on bucket ``bucket`` and returning its id."""

    def _make(
        direction: SyncDirection = SyncDirection.UPLOAD_ONLY,
        delete_propagation: bool = True,
        prefix: str = "backup",
        name: str = "test",
        path: Optional[Path] = None,
    ) -> int:
        return registry.create(
            NewSyncPair(
                name=name,
                local_path=path or local_dir,
                account_id="acct",
                bucket="bucket",
                remote_prefix=prefix,
                direction=direction,
                delete_propagation=delete_propagation,
            )
        )

    return _make
