"""Tests for the sync pair registry and pair objects."""

from pathlib import Path

import pytest

from bucketsync.exceptions import ConfigurationError
from bucketsync.sync import NewSyncPair, SyncDirection, SyncPairStatus
from bucketsync.utils import current_owner

DEAD_OWNER = "999999999:1.000"


class TestNewSyncPair:
    """Test NewSyncPair normalization."""

    def test_prefix_normalized(self, tmp_path):
        """Test that leading and trailing slashes are stripped."""
        pair = NewSyncPair("p", tmp_path, "acct", "bucket", remote_prefix="/a/b/")
        assert pair.remote_prefix == "a/b"

    def test_direction_alias(self, tmp_path):
        """Test that direction aliases are parsed."""
        pair = NewSyncPair("p", str(tmp_path), "acct", "bucket", direction="pull")
        assert pair.direction == SyncDirection.DOWNLOAD_ONLY
        assert isinstance(pair.local_path, Path)

    def test_invalid_direction(self, tmp_path):
        """Test that unknown directions are rejected."""
        with pytest.raises(ConfigurationError, match="Unknown sync direction"):
            NewSyncPair("p", tmp_path, "acct", "bucket", direction="sideways")

    def test_from_dict(self, tmp_path):
        """Test creating from a camelCase dictionary."""
        pair = NewSyncPair.from_dict(
            {
                "name": "p",
                "localPath": str(tmp_path),
                "accountId": "acct",
                "bucket": "bucket",
                "syncDirection": "download_only",
                "deletePropagation": False,
            }
        )
        assert pair.direction == SyncDirection.DOWNLOAD_ONLY
        assert pair.delete_propagation is False

    def test_from_dict_missing_fields(self):
        """Test that missing required fields raise ValueError."""
        with pytest.raises(ValueError, match="localPath"):
            NewSyncPair.from_dict({"name": "p", "accountId": "a", "bucket": "b"})


class TestPairRegistry:
    """Test PairRegistry CRUD and status lifecycle."""

    def test_create_and_get(self, registry, local_dir):
        """Test creating a pair and reading it back."""
        pair_id = registry.create(
            NewSyncPair("docs", local_dir, "acct", "bucket", remote_prefix="docs/")
        )

        pair = registry.get(pair_id)
        assert pair is not None
        assert pair.name == "docs"
        assert pair.local_path == local_dir.resolve()
        assert pair.remote_prefix == "docs"
        assert pair.direction == SyncDirection.UPLOAD_ONLY
        assert pair.delete_propagation is True
        assert pair.status == SyncPairStatus.IDLE
        assert pair.last_sync_at is None

    def test_create_missing_path(self, registry, tmp_path):
        """Test that a missing local path is rejected."""
        with pytest.raises(ConfigurationError, match="does not exist"):
            registry.create(NewSyncPair("p", tmp_path / "nope", "acct", "bucket"))

    def test_create_path_is_file(self, registry, tmp_path):
        """Test that a file path is rejected."""
        file_path = tmp_path / "file.txt"
        file_path.write_text("x")
        with pytest.raises(ConfigurationError, match="not a directory"):
            registry.create(NewSyncPair("p", file_path, "acct", "bucket"))

    def test_create_duplicate_endpoints(self, registry, local_dir):
        """Test that the same endpoints cannot be bound twice."""
        registry.create(NewSyncPair("one", local_dir, "acct", "bucket", "pre"))
        with pytest.raises(ConfigurationError, match="already binds"):
            registry.create(NewSyncPair("two", local_dir, "acct", "bucket", "/pre/"))

    def test_same_dir_different_prefix_allowed(self, registry, local_dir):
        """Test that a different prefix makes a distinct pair."""
        registry.create(NewSyncPair("one", local_dir, "acct", "bucket", "a"))
        registry.create(NewSyncPair("two", local_dir, "acct", "bucket", "b"))
        assert len(registry.list_pairs()) == 2

    def test_get_unknown(self, registry):
        """Test that unknown ids return None and require raises."""
        assert registry.get(999) is None
        with pytest.raises(ConfigurationError, match="not found"):
            registry.require(999)

    def test_list_filtered_by_account(self, registry, local_dir):
        """Test listing pairs of one account."""
        registry.create(NewSyncPair("b", local_dir, "acct1", "bucket", "x"))
        registry.create(NewSyncPair("a", local_dir, "acct2", "bucket", "y"))

        assert [p.name for p in registry.list_pairs()] == ["a", "b"]
        assert [p.name for p in registry.list_pairs("acct1")] == ["b"]

    def test_delete(self, registry, make_pair):
        """Test deleting a pair."""
        pair_id = make_pair()
        assert registry.delete(pair_id) is True
        assert registry.get(pair_id) is None
        assert registry.delete(pair_id) is False

    def test_status_lifecycle(self, registry, make_pair):
        """Test idle -> syncing -> error -> syncing -> idle."""
        pair_id = make_pair()

        registry.set_status(pair_id, SyncPairStatus.SYNCING)
        assert registry.get(pair_id).status == SyncPairStatus.SYNCING

        registry.mark_failed(pair_id, "boom")
        pair = registry.get(pair_id)
        assert pair.status == SyncPairStatus.ERROR
        assert pair.last_error == "boom"

        registry.set_status(pair_id, SyncPairStatus.SYNCING)
        registry.mark_completed(pair_id)
        pair = registry.get(pair_id)
        assert pair.status == SyncPairStatus.IDLE
        assert pair.last_error is None
        assert pair.last_sync_at is not None

    def test_recover_interrupted(self, registry, make_pair, tmp_path):
        """Test that pairs stuck in syncing are moved to error."""
        other_dir = tmp_path / "other"
        other_dir.mkdir()
        stuck = make_pair()
        idle = make_pair(name="idle", path=other_dir)
        registry.set_status(stuck, SyncPairStatus.SYNCING)

        assert registry.recover_interrupted() == [stuck]

        assert registry.get(stuck).status == SyncPairStatus.ERROR
        assert registry.get(stuck).last_error == "Sync was interrupted"
        assert registry.get(idle).status == SyncPairStatus.IDLE

    def test_to_dict(self, registry, make_pair):
        """Test the JSON form of a pair."""
        pair = registry.get(make_pair())
        data = pair.to_dict()
        assert data["syncDirection"] == "upload_only"
        assert data["remotePrefix"] == "backup"
        assert data["status"] == "idle"


class TestPairOwnership:
    """Test which process a syncing pair belongs to."""

    def test_claim_idle_pair(self, registry, make_pair):
        """Test that claiming an idle pair marks it syncing."""
        pair_id = make_pair()
        owner = current_owner()

        assert registry.claim(pair_id, owner) is True

        assert registry.get(pair_id).status == SyncPairStatus.SYNCING
        assert registry.active_owner(pair_id) == owner

    def test_claim_refused_for_live_owner(self, registry, make_pair):
        """Test that a pair syncing in a running process cannot be claimed."""
        pair_id = make_pair()
        registry.claim(pair_id, current_owner())

        assert registry.claim(pair_id, "other") is False
        assert registry.active_owner(pair_id) == current_owner()

    def test_claim_takes_over_dead_owner(self, registry, make_pair):
        """Test that a pair left by a dead process can be claimed again."""
        pair_id = make_pair()
        registry.claim(pair_id, DEAD_OWNER)
        assert registry.active_owner(pair_id) is None

        owner = current_owner()
        assert registry.claim(pair_id, owner) is True
        assert registry.active_owner(pair_id) == owner

    def test_finishing_releases_owner(self, registry, make_pair):
        """Test that completion and failure release the pair."""
        pair_id = make_pair()
        registry.claim(pair_id, current_owner())
        registry.mark_completed(pair_id)
        assert registry.active_owner(pair_id) is None

        registry.claim(pair_id, current_owner())
        registry.mark_failed(pair_id, "boom")
        assert registry.active_owner(pair_id) is None
        assert registry.claim(pair_id, current_owner()) is True

    def test_recover_skips_live_owner(self, registry, make_pair, tmp_path):
        """Test that only pairs of dead processes are recovered."""
        other_dir = tmp_path / "other"
        other_dir.mkdir()
        live = make_pair()
        dead = make_pair(name="dead", path=other_dir)
        registry.claim(live, current_owner())
        registry.claim(dead, DEAD_OWNER)

        assert registry.recover_interrupted() == [dead]

        assert registry.get(live).status == SyncPairStatus.SYNCING
        assert registry.get(dead).status == SyncPairStatus.ERROR
