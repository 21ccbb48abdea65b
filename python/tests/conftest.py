"""Shared pytest fixtures for bulkupload tests.

Uploads go to an in-memory object store using the ``store://`` scheme, so
no cloud credentials or network access are needed.
"""

from pathlib import Path

import pytest

from bulkupload.config import Destination
from bulkupload.storage.memory import MemoryObjectStore


def make_tree(root: Path, files: dict[str, bytes]) -> Path:
    """Create ``files`` (slash-separated relative path -> content) below root."""
    root.mkdir(parents=True, exist_ok=True)
    for rel, content in files.items():
        path = root.joinpath(*rel.split("/"))
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
    return root


@pytest.fixture
def store() -> MemoryObjectStore:
    """An empty in-memory store accepting ``store://`` destinations."""
    return MemoryObjectStore(scheme="store")


@pytest.fixture
def destination() -> Destination:
    """The destination ``store://bucket/prefix``."""
    return Destination(scheme="store", bucket="bucket", prefix="prefix")


@pytest.fixture
def sample_tree(tmp_path) -> Path:
    """A directory holding a.txt, b/c.txt and d.bin."""
    return make_tree(
        tmp_path / "src",
        {
            "a.txt": b"alpha",
            "b/c.txt": b"charlie",
            "d.bin": bytes(range(256)) * 10,
        },
    )
