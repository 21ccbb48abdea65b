"""In-memory object store for bulkupload.

Objects are held in a dictionary keyed by ``(bucket, key)``. A writer
collects bytes privately and only publishes the object when it is closed,
so aborted or failed uploads never become visible.
"""

import hashlib
import logging
import threading

from bulkupload.errors import ObjectStoreError

logger = logging.getLogger(__name__)


class MemoryCapacityError(ObjectStoreError):
    """Raised when committing an object would exceed max_size_bytes."""


class MemoryObjectWriter:
    """Write stream that commits into a MemoryObjectStore on close."""

    def __init__(self, store: "MemoryObjectStore", bucket: str, key: str) -> None:
        self._store = store
        self.bucket = bucket
        self.key = key
        self._data = bytearray()
        self._closed = False

    def write(self, data: bytes | bytearray | memoryview) -> None:
        if self._closed:
            raise ObjectStoreError(f"write to closed writer: {self.bucket}/{self.key}")
        self._data += data

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._store._commit(self.bucket, self.key, bytes(self._data))
        self._data = bytearray()

    def abort(self) -> None:
        self._closed = True
        self._data = bytearray()


class MemoryObjectStore:
    """Object store that keeps all committed objects in memory.

    Attributes:
        scheme: URI scheme accepted for destinations.
        max_size_bytes: Maximum total bytes of committed objects (0 = unlimited).
    """

    def __init__(self, scheme: str = "mem", max_size_bytes: int = 0) -> None:
        self.scheme = scheme
        self.max_size_bytes = max_size_bytes
        # (bucket, key) -> data
        self._objects: dict[tuple[str, str], bytes] = {}
        self._current_size = 0
        self._lock = threading.Lock()

    def open_writer(self, bucket: str, key: str, chunk_size: int = 0) -> MemoryObjectWriter:
        return MemoryObjectWriter(self, bucket, key)

    def _commit(self, bucket: str, key: str, data: bytes) -> None:
        obj_key = (bucket, key)
        with self._lock:
            old_size = len(self._objects.get(obj_key, b""))
            new_size = self._current_size - old_size + len(data)
            if self.max_size_bytes > 0 and new_size > self.max_size_bytes:
                raise MemoryCapacityError(
                    f"Cannot store {len(data)} bytes: would exceed "
                    f"max_size_bytes ({new_size} > {self.max_size_bytes})"
                )
            self._objects[obj_key] = data
            self._current_size = new_size
        logger.debug("Committed %s/%s (%d bytes)", bucket, key, len(data))

    def get(self, bucket: str, key: str) -> bytes:
        """Return a committed object's bytes.

        Raises:
            FileNotFoundError: If the object does not exist.
        """
        with self._lock:
            try:
                return self._objects[(bucket, key)]
            except KeyError:
                raise FileNotFoundError(f"Object not found: {bucket}/{key}") from None

    def etag(self, bucket: str, key: str) -> str:
        """Return the hex MD5 of a committed object."""
        return hashlib.md5(self.get(bucket, key)).hexdigest()

    def keys(self, bucket: str) -> list[str]:
        """Return the sorted keys committed to ``bucket``."""
        with self._lock:
            return sorted(k for b, k in self._objects if b == bucket)

    def close(self) -> None:
        """No-op for the memory store."""
        pass
