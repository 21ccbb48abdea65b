"""Progress counting and Prometheus metrics for bulkupload.

All metrics use the ``bulkupload_`` prefix. Each pipeline owns its own
``CollectorRegistry`` so that several pipelines can run in one process
without colliding in the global registry. The registry can be written to a
node-exporter textfile once the run is over.
"""

from __future__ import annotations

import logging
import threading

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, write_to_textfile

logger = logging.getLogger(__name__)

# Upload duration buckets in seconds, from small objects to multi-GiB files.
_DURATION_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0)


def format_duration(seconds: float) -> str:
    """Render an elapsed time as e.g. ``850.123ms``, ``2.500s`` or ``3m4.200s``."""
    if seconds < 1:
        return f"{seconds * 1000:.3f}ms"
    if seconds < 60:
        return f"{seconds:.3f}s"
    minutes, rest = divmod(seconds, 60)
    if minutes < 60:
        return f"{int(minutes)}m{rest:.3f}s"
    hours, minutes = divmod(int(minutes), 60)
    return f"{hours}h{minutes}m{rest:.3f}s"


class UploadCounter:
    """Monotonic count of completed uploads, safe to share between threads."""

    def __init__(self) -> None:
        self._value = 0
        self._lock = threading.Lock()

    def increment(self) -> int:
        """Add one and return the new count."""
        with self._lock:
            self._value += 1
            return self._value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


class UploadMetrics:
    """Prometheus collectors for one upload pipeline.

    Attributes:
        registry: The registry all collectors are registered in.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()

        self.uploads_total = Counter(
            "bulkupload_uploads_total",
            "Total files uploaded successfully",
            registry=self.registry,
        )
        self.bytes_uploaded_total = Counter(
            "bulkupload_bytes_uploaded_total",
            "Total bytes written to finalized objects",
            registry=self.registry,
        )
        self.upload_failures_total = Counter(
            "bulkupload_upload_failures_total",
            "Failed file transfers by stage",
            ["stage"],
            registry=self.registry,
        )
        self.upload_duration_seconds = Histogram(
            "bulkupload_upload_duration_seconds",
            "Wall-clock time to upload a single file",
            buckets=_DURATION_BUCKETS,
            registry=self.registry,
        )
        self.uploads_in_flight = Gauge(
            "bulkupload_uploads_in_flight",
            "Transfers currently holding a local file and a remote writer",
            registry=self.registry,
        )
        self.buffers_allocated = Gauge(
            "bulkupload_buffers_allocated",
            "Copy buffers allocated by the buffer pool",
            registry=self.registry,
        )
        self.batch_duration_seconds = Gauge(
            "bulkupload_batch_duration_seconds",
            "Wall-clock time of the whole batch",
            registry=self.registry,
        )

    def write_textfile(self, path: str) -> None:
        """Write all collectors to ``path`` in the Prometheus text format."""
        write_to_textfile(path, self.registry)
        logger.debug("Wrote metrics to %s", path)


class ProgressReporter:
    """Records completed uploads and optionally logs one line per file.

    Attributes:
        counter: The shared upload counter.
        metrics: Prometheus collectors updated on every completion.
        verbose: Whether to log each completed upload.
    """

    def __init__(
        self,
        metrics: UploadMetrics | None = None,
        verbose: bool = False,
    ) -> None:
        self.counter = UploadCounter()
        self.metrics = metrics if metrics is not None else UploadMetrics()
        self.verbose = verbose
        self._bytes = 0
        self._lock = threading.Lock()

    @property
    def uploaded(self) -> int:
        return self.counter.value

    @property
    def bytes_uploaded(self) -> int:
        with self._lock:
            return self._bytes

    def record_success(self, destination: str, nbytes: int, elapsed: float) -> int:
        """Count one finished upload and return the new running total."""
        count = self.counter.increment()
        with self._lock:
            self._bytes += nbytes
        self.metrics.uploads_total.inc()
        self.metrics.bytes_uploaded_total.inc(nbytes)
        self.metrics.upload_duration_seconds.observe(elapsed)
        if self.verbose:
            logger.info(
                "%07d: -> %s: %s",
                count,
                destination,
                format_duration(elapsed),
                extra={
                    "count": count,
                    "destination": destination,
                    "duration_ms": round(elapsed * 1000, 3),
                },
            )
        return count

    def record_failure(self, stage: str) -> None:
        self.metrics.upload_failures_total.labels(stage=stage).inc()

    def record_total(self, elapsed: float) -> None:
        """Log the batch wall-clock time. Called once per run."""
        self.metrics.batch_duration_seconds.set(elapsed)
        logger.info(
            "total: %s",
            format_duration(elapsed),
            extra={"uploaded": self.uploaded, "duration_ms": round(elapsed * 1000, 3)},
        )
