"""Bounded-concurrency upload engine.

An :class:`UploadPipeline` owns everything the workers share: the buffer
pool, the concurrency limiter, the progress counter and the cancellation
signal. Every work item becomes a :class:`TransferTask` run on a thread pool
of ``concurrency`` workers. Each task runs strictly in order:

    admission check -> open source -> open writer -> copy -> finalize -> record

The first task that fails cancels the batch: tasks that have not been
admitted yet exit without touching the filesystem or the store, tasks that
are already copying run to their own end, and ``run()`` raises that first
error. Any later errors are discarded.
"""

import gc
import logging
import threading
import time
from collections.abc import Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import BinaryIO

from bulkupload.bufferpool import DEFAULT_BUFFER_SIZE, BufferPool
from bulkupload.config import Destination, TransferConfig
from bulkupload.errors import BulkUploadError, ObjectStoreError, TransferError
from bulkupload.metrics import ProgressReporter, UploadMetrics
from bulkupload.sizes import MIB
from bulkupload.storage.backend import ObjectStore, ObjectWriter
from bulkupload.worklist import WorkItem

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 24
DEFAULT_CHUNK_SIZE = 16 * MIB


class CancellationSignal:
    """Write-once, read-many record of the first fatal error in a batch."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._error: BaseException | None = None

    def cancel(self, error: BaseException) -> bool:
        """Set the signal. Returns False if it had already been set."""
        with self._lock:
            if self._error is not None:
                return False
            self._error = error
        self._event.set()
        return True

    def is_set(self) -> bool:
        return self._event.is_set()

    @property
    def error(self) -> BaseException | None:
        with self._lock:
            return self._error


@dataclass(frozen=True)
class UploadResult:
    """Outcome of a successful batch.

    Attributes:
        uploaded: Number of objects finalized.
        bytes: Total bytes uploaded.
        elapsed: Wall-clock seconds from first submission to completion.
    """

    uploaded: int
    bytes: int
    elapsed: float


class TransferTask:
    """Uploads one work item using the pipeline's shared resources."""

    def __init__(self, item: WorkItem, pipeline: "UploadPipeline") -> None:
        self.item = item
        self.pipeline = pipeline

    def run(self) -> None:
        """Transfer the item.

        Raises:
            TransferError: If any step fails. The error names the failing
                stage and the local path. Unexpected exceptions are
                reported with stage "internal".
        """
        try:
            self._transfer()
        except BulkUploadError:
            raise
        except Exception as exc:
            raise TransferError("internal", self.item, exc) from exc

    def _transfer(self) -> None:
        pipeline = self.pipeline
        item = self.item
        if pipeline.cancellation.is_set():
            return

        start = time.monotonic()
        try:
            source = open(item.source, "rb")
        except (OSError, ValueError) as exc:
            raise TransferError("open", item, exc) from exc

        with source:
            try:
                writer = pipeline.store.open_writer(
                    pipeline.destination.bucket, item.key, pipeline.chunk_size
                )
            except ObjectStoreError as exc:
                raise TransferError("create writer", item, exc) from exc

            pipeline.metrics.uploads_in_flight.inc()
            try:
                nbytes = self._copy(source, writer)
                try:
                    writer.close()
                except ObjectStoreError as exc:
                    raise TransferError("close writer", item, exc) from exc
            finally:
                pipeline.metrics.uploads_in_flight.dec()

        count = pipeline.progress.record_success(
            pipeline.destination.url(item.key), nbytes, time.monotonic() - start
        )
        if pipeline.gc_interval > 0 and count % pipeline.gc_interval == 0:
            collected = gc.collect()
            logger.debug("gc after %d uploads: %d objects collected", count, collected)

    def _copy(self, source: BinaryIO, writer: ObjectWriter) -> int:
        """Stream ``source`` into ``writer`` through one pooled buffer.

        The writer is aborted if the copy fails.
        """
        item = self.item
        total = 0
        try:
            with self.pipeline.pool.checkout() as buffer, memoryview(buffer) as view:
                while True:
                    try:
                        n = source.readinto(buffer)
                    except OSError as exc:
                        raise TransferError("read", item, exc) from exc
                    if not n:
                        break
                    try:
                        writer.write(view[:n])
                    except ObjectStoreError as exc:
                        raise TransferError("upload", item, exc) from exc
                    total += n
        except BaseException:
            writer.abort()
            raise
        return total


class UploadPipeline:
    """Coordinator for one bulk upload batch.

    A pipeline is single use: once ``run()`` has returned or raised, create
    a new one for the next batch.

    Attributes:
        store: The object store receiving the uploads.
        destination: Destination bucket and key prefix.
        concurrency: Maximum number of transfers in flight.
        chunk_size: Upload request size handed to the store (0 = default).
        gc_interval: Run a full garbage collection every this many
            completed uploads (0 = never).
        pool: Copy buffer pool.
        cancellation: The batch's cancellation signal.
        progress: Completion counter and reporter.
    """

    def __init__(
        self,
        store: ObjectStore,
        destination: Destination,
        concurrency: int = DEFAULT_CONCURRENCY,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        gc_interval: int = 0,
        verbose: bool = False,
        metrics: UploadMetrics | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1: {concurrency}")
        if gc_interval < 0:
            raise ValueError(f"gc interval must not be negative: {gc_interval}")
        self.store = store
        self.destination = destination
        self.concurrency = concurrency
        self.chunk_size = chunk_size
        self.gc_interval = gc_interval
        self.pool = BufferPool(buffer_size)
        self.cancellation = CancellationSignal()
        self.progress = ProgressReporter(metrics, verbose=verbose)
        self._slots = threading.BoundedSemaphore(concurrency)

    @classmethod
    def from_config(
        cls,
        config: TransferConfig,
        store: ObjectStore,
        destination: Destination,
        metrics: UploadMetrics | None = None,
    ) -> "UploadPipeline":
        """Build a pipeline from the ``transfer`` config section."""
        return cls(
            store,
            destination,
            concurrency=config.concurrency,
            buffer_size=config.buffer_size,
            chunk_size=config.chunk_size,
            gc_interval=config.gc_interval,
            verbose=config.verbose,
            metrics=metrics,
        )

    @property
    def metrics(self) -> UploadMetrics:
        return self.progress.metrics

    def run(self, items: Iterable[WorkItem]) -> UploadResult:
        """Upload every item, at most ``concurrency`` at a time.

        Submission blocks while ``concurrency`` transfers are in flight and
        stops early once the batch is cancelled. The total elapsed time is
        logged whether or not the batch succeeds.

        Returns:
            The batch result.

        Raises:
            TransferError: The first transfer failure.
            EnumerationError: If iterating ``items`` fails and no transfer
                failed before it.
        """
        start = time.monotonic()
        try:
            with ThreadPoolExecutor(
                max_workers=self.concurrency, thread_name_prefix="bulkupload"
            ) as executor:
                for item in items:
                    if self.cancellation.is_set():
                        break
                    self._slots.acquire()
                    try:
                        future = executor.submit(TransferTask(item, self).run)
                    except BaseException:
                        self._slots.release()
                        raise
                    future.add_done_callback(self._task_done)
        except Exception as exc:
            if not self.cancellation.cancel(exc):
                raise self.cancellation.error from exc
            raise
        finally:
            elapsed = time.monotonic() - start
            self.metrics.buffers_allocated.set(self.pool.allocated)
            self.progress.record_total(elapsed)

        error = self.cancellation.error
        if error is not None:
            raise error
        return UploadResult(
            uploaded=self.progress.uploaded,
            bytes=self.progress.bytes_uploaded,
            elapsed=elapsed,
        )

    def _task_done(self, future: Future) -> None:
        try:
            exc = future.exception()
            if exc is None:
                return
            extra = {"stage": "internal"}
            if isinstance(exc, TransferError):
                extra = {"stage": exc.stage, "path": exc.item.path}
            self.progress.record_failure(extra["stage"])
            if self.cancellation.cancel(exc):
                logger.debug("Cancelling remaining uploads: %s", exc, extra=extra)
            else:
                logger.debug("Discarding error after cancellation: %s", exc, extra=extra)
        finally:
            self._slots.release()
