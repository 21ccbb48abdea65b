"""bulkupload - concurrent bulk upload of local files to object storage."""

__version__ = "0.1.0"
