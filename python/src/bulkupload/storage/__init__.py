"""Object store adapters for bulkupload."""

from typing import TYPE_CHECKING

from bulkupload.storage.backend import ObjectStore, ObjectWriter

if TYPE_CHECKING:
    from bulkupload.config import StorageConfig

__all__ = [
    "create_store",
    "ObjectStore",
    "ObjectWriter",
    "SCHEMES",
]

# Destination URI scheme accepted by each backend.
SCHEMES: dict[str, str] = {
    "gcp": "gs",
    "memory": "mem",
}


def create_store(config: "StorageConfig") -> ObjectStore:
    """Create an object store instance based on configuration.

    Args:
        config: The storage configuration.

    Returns:
        An initialized object store.

    Raises:
        ObjectStoreError: If the backend client cannot be created.
        ValueError: If the backend is unknown.
    """
    backend = config.backend

    if backend == "gcp":
        from bulkupload.storage.gcp import GCSObjectStore

        return GCSObjectStore(project=config.gcp_project)

    elif backend == "memory":
        from bulkupload.storage.memory import MemoryObjectStore

        return MemoryObjectStore(scheme=SCHEMES["memory"])

    else:
        raise ValueError(f"Unknown storage backend: {backend}")
