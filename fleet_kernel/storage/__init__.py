"""Bill document storage."""

from fleet_kernel.storage.object_store import (
    BillUpload,
    FilesystemObjectStore,
    InMemoryObjectStore,
    ObjectStore,
    StoredObject,
)

__all__ = [
    "BillUpload",
    "FilesystemObjectStore",
    "InMemoryObjectStore",
    "ObjectStore",
    "StoredObject",
]
