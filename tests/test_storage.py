"""Tests for MemoryBackend and FileBackend."""

from __future__ import annotations

import json

import pytest

from controlgate.storage import FileBackend, MemoryBackend, QuotaExceededError, StorageError


class TestMemoryBackend:
    async def test_get_missing_key(self, backend):
        assert await backend.get("nonexistent") is None

    async def test_set_and_get(self, backend):
        await backend.set("key1", "value1")
        assert await backend.get("key1") == "value1"

    async def test_set_overwrites(self, backend):
        await backend.set("key1", "v1")
        await backend.set("key1", "v2")
        assert await backend.get("key1") == "v2"

    async def test_delete_existing(self, backend):
        await backend.set("key1", "value1")
        await backend.delete("key1")
        assert await backend.get("key1") is None

    async def test_delete_nonexistent(self, backend):
        await backend.delete("nonexistent")  # should not raise

    async def test_quota_rejects_oversized_write(self):
        backend = MemoryBackend(quota_bytes=20)
        await backend.set("k", "abc")  # 2 * (1 + 3) = 8 bytes
        with pytest.raises(QuotaExceededError):
            await backend.set("k2", "x" * 20)
        assert await backend.get("k2") is None
        assert await backend.get("k") == "abc"

    async def test_quota_error_is_storage_error(self):
        backend = MemoryBackend(quota_bytes=1)
        with pytest.raises(StorageError):
            await backend.set("key", "value")


class TestChangeNotification:
    async def test_set_notifies_with_origin(self, backend):
        events = []
        backend.subscribe(events.append)
        await backend.set("key", "v1", origin="writer-a")
        await backend.set("key", "v2")

        assert [(e.key, e.old_value, e.new_value, e.origin) for e in events] == [
            ("key", None, "v1", "writer-a"),
            ("key", "v1", "v2", None),
        ]

    async def test_delete_notifies_only_when_key_existed(self, backend):
        events = []
        backend.subscribe(events.append)
        await backend.delete("missing")
        assert events == []

        await backend.set("key", "v")
        await backend.delete("key")
        assert events[-1].new_value is None

    async def test_unsubscribe(self, backend):
        events = []
        unsubscribe = backend.subscribe(events.append)
        unsubscribe()
        unsubscribe()  # idempotent
        await backend.set("key", "v")
        assert events == []

    async def test_listener_exception_does_not_block_write(self, backend):
        def broken(event):
            raise RuntimeError("boom")

        received = []
        backend.subscribe(broken)
        backend.subscribe(received.append)
        await backend.set("key", "v")

        assert await backend.get("key") == "v"
        assert len(received) == 1


class TestFileBackend:
    async def test_round_trip_across_instances(self, tmp_path):
        path = tmp_path / "storage.json"
        await FileBackend(path).set("key", "value")

        assert await FileBackend(path).get("key") == "value"
        assert json.loads(path.read_text()) == {"key": "value"}

    async def test_missing_file_reads_empty(self, tmp_path):
        backend = FileBackend(tmp_path / "absent.json")
        assert await backend.get("anything") is None

    async def test_creates_parent_directories(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "storage.json"
        await FileBackend(path).set("key", "value")
        assert path.exists()

    async def test_delete(self, tmp_path):
        backend = FileBackend(tmp_path / "storage.json")
        await backend.set("a", "1")
        await backend.set("b", "2")
        await backend.delete("a")
        assert await backend.get("a") is None
        assert await backend.get("b") == "2"

    async def test_corrupt_file_raises_storage_error(self, tmp_path):
        path = tmp_path / "storage.json"
        path.write_text("{not json")
        with pytest.raises(StorageError):
            await FileBackend(path).get("key")

    async def test_non_object_document_raises_storage_error(self, tmp_path):
        path = tmp_path / "storage.json"
        path.write_text("[1, 2, 3]")
        with pytest.raises(StorageError):
            await FileBackend(path).get("key")

    async def test_quota_leaves_file_untouched(self, tmp_path):
        path = tmp_path / "storage.json"
        backend = FileBackend(path, quota_bytes=30)
        await backend.set("k", "small")
        with pytest.raises(QuotaExceededError):
            await backend.set("k", "x" * 100)
        assert await backend.get("k") == "small"

    async def test_notifies_subscribers(self, tmp_path):
        backend = FileBackend(tmp_path / "storage.json")
        events = []
        backend.subscribe(events.append)
        await backend.set("key", "v", origin="me")
        assert events[0].origin == "me"
