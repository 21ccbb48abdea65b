"""Object store writer protocol for bulkupload."""

from typing import Protocol


class ObjectWriter(Protocol):
    """A write stream for a single remote object.

    Data written is not guaranteed to be committed until ``close()``
    returns successfully.
    """

    def write(self, data: bytes | bytearray | memoryview) -> None:
        """Append bytes to the object.

        Implementations must copy or send ``data`` before returning; callers
        reuse the underlying buffer for the next read.

        Raises:
            ObjectStoreError: If the bytes cannot be accepted.
        """
        ...

    def close(self) -> None:
        """Finalize the object.

        Raises:
            ObjectStoreError: If the object could not be committed.
        """
        ...

    def abort(self) -> None:
        """Discard the object without committing it. Never raises."""
        ...


class ObjectStore(Protocol):
    """Protocol implemented by every object store adapter.

    Attributes:
        scheme: URI scheme of destinations this store accepts (e.g. "gs").
    """

    scheme: str

    def open_writer(self, bucket: str, key: str, chunk_size: int) -> ObjectWriter:
        """Open a write stream for ``bucket``/``key``.

        Args:
            bucket: The destination bucket name.
            key: The destination object key.
            chunk_size: Bytes per upload request; 0 selects the client
                default.

        Returns:
            A writer that must be closed or aborted.

        Raises:
            ObjectStoreError: If the stream cannot be opened.
        """
        ...

    def close(self) -> None:
        """Release resources held by the store."""
        ...
