"""
Tests for the backing stores.
"""
import orjson
import pytest

from secure_storage.backends import FileStorage, MemoryStorage
from secure_storage.exceptions import StorageUnavailable


class TestMemoryStorage:
    """Tests for MemoryStorage."""

    def test_set_get(self):
        store = MemoryStorage()
        store.set_item("k", "v")
        assert store.get_item("k") == "v"
        assert store["k"] == "v"
        assert "k" in store
        assert len(store) == 1

    def test_missing_key(self):
        assert MemoryStorage().get_item("nope") is None

    def test_remove_is_idempotent(self):
        store = MemoryStorage()
        store.set_item("k", "v")
        store.remove_item("k")
        store.remove_item("k")
        assert "k" not in store

    def test_key_list_is_snapshot(self):
        store = MemoryStorage()
        for i in range(3):
            store.set_item(f"k{i}", "v")
        for key in store.key_list():
            store.remove_item(key)
        assert len(store) == 0

    def test_rejects_non_string_values(self):
        with pytest.raises(TypeError):
            MemoryStorage()["k"] = 1

    def test_quota(self):
        store = MemoryStorage(quota=10)
        store.set_item("a", "12345")
        with pytest.raises(StorageUnavailable):
            store.set_item("b", "123456789")
        assert "b" not in store

    def test_quota_counts_replacement(self):
        store = MemoryStorage(quota=10)
        store.set_item("a", "123456789")
        store.set_item("a", "987654321")
        assert store["a"] == "987654321"

    def test_repr(self):
        assert "session" in repr(MemoryStorage("session"))


class TestFileStorage:
    """Tests for FileStorage."""

    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "store.json"
        FileStorage(path).set_item("k", "v")
        assert FileStorage(path).get_item("k") == "v"

    def test_file_is_json(self, tmp_path):
        path = tmp_path / "store.json"
        store = FileStorage(path)
        store.set_item("a", "1")
        store.set_item("b", "2")
        assert orjson.loads(path.read_bytes()) == {"a": "1", "b": "2"}

    def test_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "store.json"
        FileStorage(path).set_item("k", "v")
        assert path.exists()

    def test_remove(self, tmp_path):
        path = tmp_path / "store.json"
        store = FileStorage(path)
        store.set_item("k", "v")
        store.remove_item("k")
        store.remove_item("k")
        assert FileStorage(path).get_item("k") is None

    def test_missing_file_is_empty(self, tmp_path):
        store = FileStorage(tmp_path / "absent.json")
        assert len(store) == 0
        assert list(store) == []

    def test_corrupted_file_is_empty(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{not json")
        store = FileStorage(path)
        assert len(store) == 0
        store.set_item("k", "v")
        assert orjson.loads(path.read_bytes()) == {"k": "v"}

    def test_ignores_non_string_values(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_bytes(orjson.dumps({"ok": "v", "bad": 3}))
        assert dict(FileStorage(path)) == {"ok": "v"}

    def test_unwritable_location(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        store = FileStorage(blocker / "store.json")
        with pytest.raises(StorageUnavailable):
            store.set_item("k", "v")

    def test_no_temp_files_left(self, tmp_path):
        store = FileStorage(tmp_path / "store.json")
        store.set_item("k", "v")
        assert [p.name for p in tmp_path.iterdir()] == ["store.json"]

    def test_shared_path_keeps_both_writers(self, tmp_path):
        path = tmp_path / "store.json"
        first = FileStorage(path)
        second = FileStorage(path)
        assert second.key_list() == []
        first.set_item("x", "1")
        second.set_item("y", "2")
        assert orjson.loads(path.read_bytes()) == {"x": "1", "y": "2"}
        first.remove_item("y")
        assert second.get_item("y") is None
        assert second.get_item("x") == "1"

    def test_reads_see_external_changes(self, tmp_path):
        path = tmp_path / "store.json"
        store = FileStorage(path)
        store.set_item("k", "old")
        path.write_bytes(orjson.dumps({"k": "new", "other": "v"}))
        assert store.get_item("k") == "new"
        assert "other" in store
