"""Reusable fixed-size copy buffers.

Each in-flight transfer checks out one buffer for the duration of a single
file copy, so peak buffer memory is ``concurrency * buffer_size`` rather than
growing with the number of files.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from bulkupload.sizes import KIB

DEFAULT_BUFFER_SIZE = 512 * KIB


class BufferPool:
    """Thread-safe pool of same-sized ``bytearray`` buffers.

    ``acquire()`` never blocks: it hands out an idle buffer if there is one
    and allocates a new buffer otherwise. Buffers are not cleared on release;
    callers must only read back the bytes they wrote themselves.

    Attributes:
        buffer_size: Size in bytes of every buffer in the pool.
        allocated: Total number of buffers ever allocated by this pool.
    """

    def __init__(self, buffer_size: int = DEFAULT_BUFFER_SIZE) -> None:
        if buffer_size <= 0:
            raise ValueError(f"buffer size must be positive: {buffer_size}")
        self.buffer_size = buffer_size
        self.allocated = 0
        self._free: list[bytearray] = []
        self._lock = threading.Lock()

    @property
    def available(self) -> int:
        """Number of idle buffers currently held by the pool."""
        with self._lock:
            return len(self._free)

    def acquire(self) -> bytearray:
        """Check out a buffer, allocating one if none is idle."""
        with self._lock:
            if self._free:
                return self._free.pop()
            self.allocated += 1
        return bytearray(self.buffer_size)

    def release(self, buffer: bytearray) -> None:
        """Return a buffer to the pool.

        Raises:
            ValueError: If the buffer does not have the pool's size.
        """
        if len(buffer) != self.buffer_size:
            raise ValueError(
                f"buffer of {len(buffer)} bytes does not belong to a pool of "
                f"{self.buffer_size}-byte buffers"
            )
        with self._lock:
            self._free.append(buffer)

    @contextmanager
    def checkout(self) -> Iterator[bytearray]:
        """Context manager that acquires a buffer and always releases it."""
        buffer = self.acquire()
        try:
            yield buffer
        finally:
            self.release(buffer)
