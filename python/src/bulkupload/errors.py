"""Error definitions for bulkupload."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bulkupload.worklist import WorkItem


class BulkUploadError(Exception):
    """Base class for every error raised by bulkupload.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(BulkUploadError):
    """Invalid destination, source selection, size value or config file.

    Always raised before any enumeration or transfer work starts.
    """


class EnumerationError(BulkUploadError):
    """The source tree could not be walked or the list file could not be read."""


class ObjectStoreError(BulkUploadError):
    """An object-store adapter failed to open, write or finalize an object."""


class TransferError(BulkUploadError):
    """A single file transfer failed, aborting the whole batch.

    Attributes:
        stage: The step that failed ("open", "create writer", "read",
            "upload", "close writer" or "internal" for unexpected
            errors).
        item: The work item being transferred.
        cause: The underlying exception.
    """

    def __init__(self, stage: str, item: "WorkItem", cause: BaseException) -> None:
        super().__init__(f"{stage} {item.source}: {cause}")
        self.stage = stage
        self.item = item
        self.cause = cause
