"""Tests for the sync engine and per-file operations."""

import threading
from unittest.mock import Mock

import pytest

from bucketsync.exceptions import StorageError, SyncCancelledError, TransferError
from bucketsync.sync import (
    ChangeType,
    DetectedChange,
    Side,
    SyncDirection,
    SyncEngine,
    SyncOperations,
    SyncPlan,
    SyncProgressEvent,
    SyncProgressTracker,
)


def change(path: str, size: int = 0, change_type=ChangeType.NEW, **kwargs):
    return DetectedChange(path, change_type, size, **kwargs)


class TestSyncOperations:
    """Test SyncOperations actions and their state write-through."""

    @pytest.fixture
    def pair(self, registry, make_pair):
        return registry.get(make_pair())

    @pytest.fixture
    def operations(self, storage, state_store):
        return SyncOperations(storage, state_store)

    def test_upload(self, operations, storage, state_store, pair, local_dir):
        """Test uploading writes the object and both tracked records."""
        (local_dir / "sub").mkdir()
        (local_dir / "sub" / "a.txt").write_bytes(b"hello")

        written = operations.upload_file(pair, change("sub/a.txt", 5, mtime=777))

        assert written == 5
        assert storage.get_object("bucket", "backup/sub/a.txt") == b"hello"
        local = state_store.get_files(pair.id, Side.LOCAL)
        remote = state_store.get_files(pair.id, Side.REMOTE)
        assert (local[0].relative_path, local[0].size, local[0].mtime) == (
            "sub/a.txt",
            5,
            777,
        )
        assert remote[0].size == 5
        assert remote[0].mtime is None
        assert remote[0].hash is None

    def test_upload_missing_file(self, operations, state_store, pair):
        """Test that a vanished local file fails without state changes."""
        with pytest.raises(TransferError) as exc_info:
            operations.upload_file(pair, change("gone.txt", 1))

        assert exc_info.value.relative_path == "gone.txt"
        assert state_store.get_files(pair.id, Side.LOCAL) == []

    def test_upload_storage_failure(self, state_store, pair, local_dir):
        """Test that storage errors are wrapped in TransferError."""
        (local_dir / "a.txt").write_bytes(b"x")
        client = Mock()
        client.put_object.side_effect = StorageError("denied")

        with pytest.raises(TransferError, match="denied"):
            SyncOperations(client, state_store).upload_file(pair, change("a.txt", 1))
        assert state_store.get_files(pair.id, Side.REMOTE) == []

    def test_download(self, operations, storage, state_store, pair, local_dir):
        """Test downloading creates parents and records both sides."""
        storage.put("bucket", "backup/docs/readme.md", b"content")

        written = operations.download_file(
            pair, change("docs/readme.md", 7, mtime=1000, hash="etag1")
        )

        target = local_dir / "docs" / "readme.md"
        assert written == 7
        assert target.read_bytes() == b"content"
        local = state_store.get_files(pair.id, Side.LOCAL)[0]
        remote = state_store.get_files(pair.id, Side.REMOTE)[0]
        assert local.size == 7
        assert local.mtime == target.stat().st_mtime_ns // 1_000_000
        assert (remote.size, remote.mtime, remote.hash) == (7, 1000, "etag1")

    def test_download_vanished_object(self, operations, state_store, pair, local_dir):
        """Test that a missing object is a skip, not an error."""
        assert operations.download_file(pair, change("missing.txt", 3)) is None
        assert not (local_dir / "missing.txt").exists()
        assert state_store.get_files(pair.id, Side.LOCAL) == []

    def test_delete_local(self, operations, state_store, pair, local_dir):
        """Test deleting a local file marks both sides deleted."""
        (local_dir / "a.txt").write_bytes(b"x")
        state_store.save_file(pair.id, Side.LOCAL, "a.txt", 1)
        state_store.save_file(pair.id, Side.REMOTE, "a.txt", 1)

        operations.delete_local(pair, change("a.txt", 1, ChangeType.DELETED))

        assert not (local_dir / "a.txt").exists()
        assert state_store.get_files(pair.id, Side.LOCAL)[0].is_deleted
        assert state_store.get_files(pair.id, Side.REMOTE)[0].is_deleted

    def test_delete_local_already_gone(self, operations, pair):
        """Test that deleting an absent local file succeeds."""
        operations.delete_local(pair, change("never.txt", 1, ChangeType.DELETED))

    def test_delete_remote(self, operations, storage, state_store, pair):
        """Test deleting an object marks both sides deleted."""
        storage.put("bucket", "backup/a.txt", b"x")
        state_store.save_file(pair.id, Side.LOCAL, "a.txt", 1)
        state_store.save_file(pair.id, Side.REMOTE, "a.txt", 1)

        operations.delete_remote(pair, change("a.txt", 1, ChangeType.DELETED))

        assert storage.keys("bucket") == []
        assert state_store.get_files(pair.id, Side.LOCAL)[0].is_deleted
        assert state_store.get_files(pair.id, Side.REMOTE)[0].is_deleted


class TestSyncEngine:
    """Test SyncEngine.execute ordering, cancellation and bookkeeping."""

    @pytest.fixture
    def pair(self, registry, make_pair):
        return registry.get(make_pair())

    @pytest.fixture
    def operations(self):
        ops = Mock(spec=SyncOperations)
        ops.upload_file.return_value = 10
        ops.download_file.return_value = 20
        return ops

    def test_strict_order(self, pair, operations, state_store):
        """Test uploads, downloads, local deletes, remote deletes in order."""
        calls = []
        operations.upload_file.side_effect = lambda p, c: calls.append(
            ("up", c.relative_path)
        ) or 1
        operations.download_file.side_effect = lambda p, c: calls.append(
            ("down", c.relative_path)
        ) or 1
        operations.delete_local.side_effect = lambda p, c: calls.append(
            ("del_local", c.relative_path)
        )
        operations.delete_remote.side_effect = lambda p, c: calls.append(
            ("del_remote", c.relative_path)
        )
        plan = SyncPlan(
            to_upload=[change("u1"), change("u2")],
            to_download=[change("d1")],
            to_delete_local=[change("l1", change_type=ChangeType.DELETED)],
            to_delete_remote=[change("r1", change_type=ChangeType.DELETED)],
        )

        stats = SyncEngine(operations, state_store).execute(pair, plan, session_id=1)

        assert calls == [
            ("up", "u1"),
            ("up", "u2"),
            ("down", "d1"),
            ("del_local", "l1"),
            ("del_remote", "r1"),
        ]
        assert stats["uploads"] == 2
        assert stats["downloads"] == 1
        assert stats["deletes_local"] == 1
        assert stats["deletes_remote"] == 1
        assert stats["processed"] == 5

    def test_stats_and_bytes(self, pair, operations, state_store):
        """Test byte accounting across uploads and downloads."""
        plan = SyncPlan(to_upload=[change("a")], to_download=[change("b")])

        stats = SyncEngine(operations, state_store).execute(pair, plan, session_id=1)

        assert stats["bytes_transferred"] == 30

    def test_race_skip_counts_as_processed(self, pair, operations, state_store):
        """Test that a vanished object is skipped and the run continues."""
        operations.download_file.side_effect = [None, 5]
        plan = SyncPlan(to_download=[change("gone"), change("here")])

        stats = SyncEngine(operations, state_store).execute(pair, plan, session_id=1)

        assert stats["skips"] == 1
        assert stats["downloads"] == 1
        assert stats["processed"] == 2

    def test_cancel_before_first_action(self, pair, operations, state_store):
        """Test that a set cancel event stops before any action."""
        cancel_event = threading.Event()
        cancel_event.set()
        plan = SyncPlan(to_upload=[change("a")])

        with pytest.raises(SyncCancelledError):
            SyncEngine(operations, state_store).execute(
                pair, plan, session_id=1, cancel_event=cancel_event
            )
        operations.upload_file.assert_not_called()

    def test_cancel_mid_run_finishes_current_action(
        self, pair, operations, state_store
    ):
        """Test that cancellation takes effect before the next action."""
        cancel_event = threading.Event()

        def upload_and_cancel(p, c):
            cancel_event.set()
            return 1

        operations.upload_file.side_effect = upload_and_cancel
        plan = SyncPlan(to_upload=[change("a"), change("b"), change("c")])
        stats = SyncEngine.create_empty_stats()

        with pytest.raises(SyncCancelledError):
            SyncEngine(operations, state_store).execute(
                pair, plan, session_id=1, cancel_event=cancel_event, stats=stats
            )
        assert operations.upload_file.call_count == 1
        assert stats["uploads"] == 1

    def test_transfer_error_aborts(self, pair, operations, state_store):
        """Test that a failing action stops the run."""
        operations.upload_file.side_effect = [1, TransferError("boom", "b")]
        plan = SyncPlan(to_upload=[change("a"), change("b"), change("c")])

        with pytest.raises(TransferError):
            SyncEngine(operations, state_store).execute(pair, plan, session_id=1)
        assert operations.upload_file.call_count == 2

    def test_progress_events(self, pair, operations, state_store):
        """Test one progress event per processed file."""
        events = []
        tracker = SyncProgressTracker(events.append)
        plan = SyncPlan(to_upload=[change("a")], to_delete_remote=[change("b")])

        SyncEngine(operations, state_store).execute(
            pair, plan, session_id=1, tracker=tracker
        )

        assert [(e.event, e.current_file) for e in events] == [
            (SyncProgressEvent.UPLOADING, "a"),
            (SyncProgressEvent.DELETING_REMOTE, "b"),
        ]
        assert events[-1].files_processed == 2
        assert events[-1].total_files == 2

    def test_failing_progress_callback_does_not_abort(
        self, pair, operations, state_store
    ):
        """Test that progress delivery is best-effort."""
        tracker = SyncProgressTracker(Mock(side_effect=RuntimeError("ui gone")))
        plan = SyncPlan(to_upload=[change("a"), change("b")])

        stats = SyncEngine(operations, state_store).execute(
            pair, plan, session_id=1, tracker=tracker
        )

        assert stats["uploads"] == 2

    def test_session_counters_written_through(self, pair, operations, state_store):
        """Test that the session receives counters after every action."""
        sessions = Mock()
        plan = SyncPlan(to_upload=[change("a"), change("b")])

        SyncEngine(operations, state_store, sessions).execute(
            pair, plan, session_id=7
        )

        assert sessions.update_progress.call_count == 2
        assert sessions.update_progress.call_args[0][0] == 7

    def test_skipped_deletions_mark_source_side_only(
        self, registry, make_pair, operations, state_store
    ):
        """Test bookkeeping for deletions that were not propagated."""
        pair = registry.get(make_pair(direction=SyncDirection.UPLOAD_ONLY))
        state_store.save_file(pair.id, Side.LOCAL, "a.txt", 1)
        state_store.save_file(pair.id, Side.REMOTE, "a.txt", 1)
        plan = SyncPlan(
            skipped_local_deletions=[change("a.txt", 1, ChangeType.DELETED)]
        )

        SyncEngine(operations, state_store).execute(pair, plan, session_id=1)

        assert state_store.get_files(pair.id, Side.LOCAL)[0].is_deleted is True
        assert state_store.get_files(pair.id, Side.REMOTE)[0].is_deleted is False
        operations.delete_remote.assert_not_called()
