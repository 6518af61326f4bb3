"""
Unit tests for the named snapshot store.
"""

import json

import pytest

from stateline.versioning import (
    ChangeType,
    SnapshotNotFoundError,
    SnapshotStore,
)


class FakeClock:
    """Deterministic clock advancing one second per reading."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        self.now += 1.0
        return self.now


@pytest.fixture
def store() -> SnapshotStore:
    return SnapshotStore(max_snapshots=3, clock=FakeClock())


class TestCreateRestore:
    """Tests for capture and restore."""

    def test_restore_round_trip(self, store: SnapshotStore) -> None:
        """Test that restore returns a state equal to the one captured."""
        store.create("s", {"count": 1, "nested": {"items": [1, 2]}})

        assert store.restore("s") == {"count": 1, "nested": {"items": [1, 2]}}

    def test_snapshot_is_independent_of_live_state(self, store: SnapshotStore) -> None:
        """Test that mutating the live state after capture has no effect."""
        live = {"user": {"name": "Ada"}, "tags": ["a"]}
        store.create("s", live)

        live["user"]["name"] = "Grace"
        live["tags"].append("b")

        assert store.restore("s") == {"user": {"name": "Ada"}, "tags": ["a"]}

    def test_restored_state_is_independent(self, store: SnapshotStore) -> None:
        """Test that mutating a restored state does not alter the snapshot."""
        store.create("s", {"items": [1]})

        restored = store.restore("s")
        restored["items"].append(2)

        assert store.restore("s") == {"items": [1]}

    def test_restore_missing_returns_none(self, store: SnapshotStore) -> None:
        """Test the not-found sentinel."""
        assert store.restore("missing") is None

    def test_create_returns_unique_ids(self, store: SnapshotStore) -> None:
        """Test snapshot id assignment."""
        first = store.create("a", {})
        second = store.create("b", {})

        assert first != second
        assert first.startswith("snapshot_")

    def test_description_and_metadata(self, store: SnapshotStore) -> None:
        """Test that description is stored in metadata."""
        store.create("s", {}, description="before login", metadata={"author": "me"})

        info = store.get_info("s")
        assert info.description == "before login"
        assert info.metadata == {"author": "me", "description": "before login"}

    def test_reusing_a_name_replaces_snapshot(self, store: SnapshotStore) -> None:
        """Test that a name identifies at most one snapshot."""
        store.create("s", {"v": 1})
        store.create("s", {"v": 2})

        assert len(store) == 1
        assert store.restore("s") == {"v": 2}

    def test_get_returns_copy(self, store: SnapshotStore) -> None:
        """Test that get hands out an independent snapshot."""
        store.create("s", {"items": [1]})

        snapshot = store.get("s")
        snapshot.state["items"].append(2)

        assert store.get("s").state == {"items": [1]}
        assert store.get("missing") is None


class TestEviction:
    """Tests for the snapshot bound."""

    def test_oldest_snapshot_is_evicted(self, store: SnapshotStore) -> None:
        """Test strict insertion-order eviction at capacity."""
        for name in ("a", "b", "c", "d"):
            store.create(name, {"name": name})

        assert store.list_snapshots() == ["b", "c", "d"]
        assert store.restore("a") is None

    def test_zero_means_unbounded(self) -> None:
        """Test that max_snapshots=0 disables eviction."""
        store = SnapshotStore(max_snapshots=0)
        for index in range(100):
            store.create(f"s{index}", {"i": index})

        assert len(store) == 100

    def test_negative_bound_rejected(self) -> None:
        """Test constructor validation."""
        with pytest.raises(ValueError):
            SnapshotStore(max_snapshots=-1)

    def test_tag_index_follows_eviction(self, store: SnapshotStore) -> None:
        """Test that evicted snapshots disappear from the tag index."""
        store.create("a", {}, tags=["release"])
        store.create("b", {}, tags=["release"])
        store.create("c", {})
        store.create("d", {})

        assert store.find_by_tag("release") == ["b"]


class TestDeleteAndTags:
    """Tests for delete, clear and tag lookup."""

    def test_delete(self, store: SnapshotStore) -> None:
        """Test delete return values."""
        store.create("s", {}, tags=["t"])

        assert store.delete("s") is True
        assert store.delete("s") is False
        assert store.find_by_tag("t") == []
        assert not store.has("s")

    def test_clear(self, store: SnapshotStore) -> None:
        """Test removing everything."""
        store.create("a", {}, tags=["t"])
        store.clear()

        assert len(store) == 0
        assert store.find_by_tag("t") == []

    def test_find_by_tag_sorted_by_time(self, store: SnapshotStore) -> None:
        """Test tag lookup ordering."""
        store.create("first", {}, tags=["ui", "v1"])
        store.create("second", {}, tags=["ui"])

        assert store.find_by_tag("ui") == ["first", "second"]
        assert store.find_by_tag("v1") == ["first"]
        assert store.find_by_tag("unknown") == []

    def test_single_string_tag(self, store: SnapshotStore) -> None:
        """Test that a bare string is one tag, not a set of characters."""
        store.create("s", {}, tags="release")

        assert store.find_by_tag("release") == ["s"]
        assert store.find_by_tag("r") == []


class TestDiffAndStats:
    """Tests for diff_snapshots and get_stats."""

    def test_diff_snapshots(self, store: SnapshotStore) -> None:
        """Test diff between two stored snapshots."""
        store.create("before", {"count": 0, "user": {"name": "Ada"}})
        store.create("after", {"count": 1, "user": {"name": "Ada"}})

        entries = store.diff_snapshots("before", "after")

        assert len(entries) == 1
        assert entries[0].path == "count"
        assert entries[0].kind == ChangeType.MODIFIED

    def test_diff_missing_snapshot_raises(self, store: SnapshotStore) -> None:
        """Test that diffing requires both snapshots."""
        store.create("before", {})

        with pytest.raises(SnapshotNotFoundError, match="missing"):
            store.diff_snapshots("before", "missing")

    def test_stats(self, store: SnapshotStore) -> None:
        """Test aggregate numbers."""
        store.create("a", {"a": 1})
        store.create("b", {"bb": 22})

        stats = store.get_stats()

        assert stats.count == 2
        assert stats.total_size == len('{"a": 1}') + len('{"bb": 22}')
        assert stats.oldest_timestamp == 1001.0
        assert stats.newest_timestamp == 1002.0
        assert stats.average_size == stats.total_size / 2

    def test_empty_stats(self, store: SnapshotStore) -> None:
        """Test stats of an empty store."""
        stats = store.get_stats()

        assert stats.count == 0
        assert stats.oldest_timestamp is None
        assert stats.average_size == 0.0


class TestExportImport:
    """Tests for snapshot export and import."""

    def test_export_import(self, store: SnapshotStore) -> None:
        """Test moving a snapshot between stores."""
        store.create("s", {"count": 3}, description="three", tags=["t"])
        text = store.export_snapshot("s")

        other = SnapshotStore()
        assert other.import_snapshot(text) is True
        assert other.restore("s") == {"count": 3}
        assert other.get_info("s").description == "three"
        assert other.find_by_tag("t") == ["s"]

    def test_export_record_shape(self, store: SnapshotStore) -> None:
        """Test the exported record fields."""
        store.create("s", {"count": 3}, tags=["b", "a"])

        record = json.loads(store.export_snapshot("s"))

        assert set(record) == {"id", "name", "state", "metadata", "tags", "timestamp"}
        assert record["tags"] == ["a", "b"]

    def test_export_missing_returns_none(self, store: SnapshotStore) -> None:
        """Test the not-found sentinel for export."""
        assert store.export_snapshot("missing") is None

    def test_import_under_new_name(self, store: SnapshotStore) -> None:
        """Test renaming on import."""
        store.create("s", {"v": 1})
        text = store.export_snapshot("s")

        assert store.import_snapshot(text, new_name="copy") is True
        assert store.list_snapshots() == ["s", "copy"]
        assert store.get("s").id != store.get("copy").id

    @pytest.mark.parametrize(
        "text",
        [
            "not json",
            "[]",
            '{"state": {}}',
            '{"name": "s", "state": 5}',
            '{"name": "s", "state": {}, "tags": "t"}',
            '{"name": "s", "state": {}, "timestamp": "yesterday"}',
        ],
    )
    def test_malformed_import_is_rejected(self, store: SnapshotStore, text: str) -> None:
        """Test that bad records return False without mutating the store."""
        store.create("existing", {"v": 1})

        assert store.import_snapshot(text) is False
        assert store.list_snapshots() == ["existing"]

    def test_export_all_import_all(self, store: SnapshotStore) -> None:
        """Test bulk export and import."""
        store.create("a", {"a": 1})
        store.create("b", {"b": 2}, tags=["t"])

        other = SnapshotStore()
        other.create("stale", {})
        assert other.import_all(store.export_all()) is True

        assert other.list_snapshots() == ["a", "b"]
        assert other.restore("b") == {"b": 2}
        assert other.find_by_tag("t") == ["b"]

    def test_import_all_rejects_any_bad_record(self, store: SnapshotStore) -> None:
        """Test that one bad record rejects the whole import."""
        store.create("existing", {})
        text = json.dumps({"snapshots": [{"name": "ok", "state": {}}, {"name": "bad"}]})

        assert store.import_all(text) is False
        assert store.list_snapshots() == ["existing"]
