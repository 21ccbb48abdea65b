"""Google Cloud Storage adapter for bulkupload.

Each object is written through a resumable-upload ``BlobWriter`` that sends
the data in ``chunk_size`` requests and retries transient failures
(``DEFAULT_RETRY`` on every request, whether or not a generation
precondition is set).

Credentials are resolved via GCS Application Default Credentials
(GOOGLE_APPLICATION_CREDENTIALS, gcloud auth, metadata server).
"""

import logging

from google.cloud import storage
from google.cloud.storage.retry import DEFAULT_RETRY

from bulkupload.errors import ConfigurationError, ObjectStoreError

logger = logging.getLogger(__name__)

# Resumable upload chunks must be a multiple of 256 KiB.
CHUNK_GRANULARITY = 256 * 1024


def check_chunk_size(chunk_size: int) -> None:
    """Validate a resumable upload chunk size (0 selects the library default).

    Raises:
        ConfigurationError: If the size is not a multiple of 256 KiB.
    """
    if chunk_size < 0 or chunk_size % CHUNK_GRANULARITY:
        raise ConfigurationError(
            f"chunk size must be a multiple of {CHUNK_GRANULARITY} bytes: {chunk_size}"
        )


class GCSObjectWriter:
    """Wraps a ``BlobWriter`` and translates client errors."""

    def __init__(self, writer, url: str) -> None:
        self._writer = writer
        self.url = url

    def write(self, data: bytes | bytearray | memoryview) -> None:
        try:
            self._writer.write(data)
        except Exception as e:
            raise ObjectStoreError(f"write {self.url}: {e}") from e

    def close(self) -> None:
        try:
            self._writer.close()
        except Exception as e:
            # A failed close leaves the BlobWriter open, and its finalizer
            # would retry the commit.
            self.abort()
            raise ObjectStoreError(f"close {self.url}: {e}") from e

    def abort(self) -> None:
        # terminate() cancels the resumable session; a plain close() would
        # commit the partial object.
        try:
            self._writer.terminate()
        except Exception as e:
            logger.warning("Failed to cancel upload session for %s: %s", self.url, e)


class GCSObjectStore:
    """Object store backed by Google Cloud Storage.

    Attributes:
        scheme: Always "gs".
        project: The GCP project ID, or empty to infer it from credentials.
    """

    scheme = "gs"

    def __init__(self, project: str = "", client: storage.Client | None = None) -> None:
        """Create the storage client.

        Raises:
            ObjectStoreError: If no client can be created (e.g. missing
                credentials).
        """
        self.project = project
        if client is None:
            try:
                client = storage.Client(project=project or None)
            except Exception as e:
                raise ObjectStoreError(f"storage client: {e}") from e
        self._client = client
        logger.debug("GCS client initialized: project=%s", client.project)

    def open_writer(self, bucket: str, key: str, chunk_size: int) -> GCSObjectWriter:
        url = f"gs://{bucket}/{key}"
        blob = self._client.bucket(bucket).blob(key)
        try:
            writer = blob.open(
                "wb",
                chunk_size=chunk_size or None,
                retry=DEFAULT_RETRY,
            )
        except Exception as e:
            raise ObjectStoreError(f"open {url}: {e}") from e
        return GCSObjectWriter(writer, url)

    def close(self) -> None:
        """Close the client's HTTP session."""
        self._client.close()
