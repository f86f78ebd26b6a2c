"""Blob, override and snapshot storage."""

from maui_snorkel.storage.blob_store import (
    BlobConflictError,
    BlobNotFoundError,
    BlobStoreError,
    LocalBlobStore,
)
from maui_snorkel.storage.overrides import OverrideStore
from maui_snorkel.storage.snapshots import (
    SnapshotConflictError,
    SnapshotNotFoundError,
    SnapshotStore,
    SnapshotWriteError,
    read_conditions,
)

__all__ = [
    "BlobConflictError",
    "BlobNotFoundError",
    "BlobStoreError",
    "LocalBlobStore",
    "OverrideStore",
    "SnapshotConflictError",
    "SnapshotNotFoundError",
    "SnapshotStore",
    "SnapshotWriteError",
    "read_conditions",
]
