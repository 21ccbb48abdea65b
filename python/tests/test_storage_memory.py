"""Unit tests for the in-memory object store."""

import hashlib

import pytest

from bulkupload.errors import ObjectStoreError
from bulkupload.storage.memory import MemoryCapacityError, MemoryObjectStore


class TestMemoryWriter:
    """Tests for writer visibility semantics."""

    def test_object_visible_only_after_close(self, store):
        writer = store.open_writer("b", "k")
        writer.write(b"hello ")
        writer.write(memoryview(b"world"))
        with pytest.raises(FileNotFoundError):
            store.get("b", "k")
        writer.close()
        assert store.get("b", "k") == b"hello world"

    def test_abort_discards(self, store):
        writer = store.open_writer("b", "k")
        writer.write(b"partial")
        writer.abort()
        assert store.keys("b") == []

    def test_write_after_close_fails(self, store):
        writer = store.open_writer("b", "k")
        writer.close()
        with pytest.raises(ObjectStoreError):
            writer.write(b"late")

    def test_close_is_idempotent(self, store):
        writer = store.open_writer("b", "k")
        writer.write(b"x")
        writer.close()
        writer.close()
        assert store.get("b", "k") == b"x"

    def test_written_buffer_can_be_reused(self, store):
        """The writer copies data, so callers may overwrite their buffer."""
        buf = bytearray(b"abc")
        writer = store.open_writer("b", "k")
        writer.write(memoryview(buf))
        buf[:] = b"xyz"
        writer.close()
        assert store.get("b", "k") == b"abc"


class TestMemoryStore:
    """Tests for store-level behaviour."""

    def test_default_scheme(self):
        assert MemoryObjectStore().scheme == "mem"

    def test_keys_per_bucket(self, store):
        for bucket, key in [("b1", "z"), ("b1", "a"), ("b2", "m")]:
            w = store.open_writer(bucket, key)
            w.close()
        assert store.keys("b1") == ["a", "z"]
        assert store.keys("b2") == ["m"]

    def test_etag(self, store):
        w = store.open_writer("b", "k")
        w.write(b"data")
        w.close()
        assert store.etag("b", "k") == hashlib.md5(b"data").hexdigest()

    def test_capacity_limit(self):
        store = MemoryObjectStore(max_size_bytes=5)
        w = store.open_writer("b", "k")
        w.write(b"123456")
        with pytest.raises(MemoryCapacityError):
            w.close()
        assert store.keys("b") == []

    def test_overwrite_reclaims_capacity(self):
        store = MemoryObjectStore(max_size_bytes=5)
        for payload in (b"12345", b"abcde"):
            w = store.open_writer("b", "k")
            w.write(payload)
            w.close()
        assert store.get("b", "k") == b"abcde"
