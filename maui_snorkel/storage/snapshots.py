"""Snapshot store: the single published conditions document."""

import logging
from typing import Optional

from maui_snorkel.core.baseline import build_baseline_snapshot
from maui_snorkel.core.model import (
    SNAPSHOT_KEY,
    ConditionsSnapshot,
    SnapshotValidationError,
    validate_snapshot_document,
)
from maui_snorkel.core.spots import SpotDatabase
from maui_snorkel.storage.blob_store import (
    BlobConflictError,
    BlobNotFoundError,
    BlobStoreError,
    LocalBlobStore,
)


logger = logging.getLogger(__name__)


class SnapshotWriteError(Exception):
    """Publishing failed. The previously published snapshot is still authoritative."""

    pass


class SnapshotConflictError(SnapshotWriteError):
    """The snapshot was replaced by another run after it was read."""

    pass


class SnapshotNotFoundError(Exception):
    """No snapshot has been published yet."""

    pass


class SnapshotStore:
    """Publishes and reads the conditions snapshot."""

    def __init__(self, blob_store: Optional[LocalBlobStore] = None, key: str = SNAPSHOT_KEY):
        self.blob_store = blob_store or LocalBlobStore()
        self.key = key

    def publish(self, snapshot: ConditionsSnapshot, if_match: Optional[str] = None) -> str:
        """Validate and write the full snapshot in a single put.

        Args:
            snapshot: The snapshot to publish.
            if_match: Etag the caller read; the write is refused if it changed.

        Returns:
            Etag of the published document.

        Raises:
            SnapshotConflictError: If if_match no longer matches.
            SnapshotWriteError: If validation or the write fails.
        """
        document = snapshot.to_dict()
        try:
            validate_snapshot_document(document)
        except SnapshotValidationError as e:
            raise SnapshotWriteError(f"Refusing to publish invalid snapshot: {e}") from e

        try:
            etag = self.blob_store.put_json(self.key, document, if_match=if_match)
        except BlobConflictError as e:
            raise SnapshotConflictError(str(e)) from e
        except BlobStoreError as e:
            raise SnapshotWriteError(f"Failed to publish snapshot: {e}") from e

        logger.info(f"Published {self.key} (etag {etag[:12]})")
        return etag

    def exists(self) -> bool:
        return self.blob_store.exists(self.key)

    def read_document(self) -> tuple[dict, str]:
        """Read the raw published document and its etag.

        Raises:
            SnapshotNotFoundError: If nothing has been published.
            SnapshotValidationError: If the stored document is unreadable or invalid.
        """
        try:
            document, etag = self.blob_store.get_json(self.key)
        except BlobNotFoundError as e:
            raise SnapshotNotFoundError(f"No snapshot published under {self.key}") from e
        except BlobStoreError as e:
            raise SnapshotValidationError(str(e)) from e

        validate_snapshot_document(document)
        return document, etag

    def load(self) -> tuple[ConditionsSnapshot, str]:
        """Load the published snapshot as a value, with the etag it was read at."""
        document, etag = self.read_document()
        return ConditionsSnapshot.from_dict(document), etag


def read_conditions(store: SnapshotStore, spot_db: SpotDatabase) -> tuple[dict, str]:
    """Conditions document for the display layer.

    Returns:
        (document, source) where source is "published", or "static" when no
        usable snapshot exists and the document was built from the baseline.
    """
    try:
        document, _ = store.read_document()
        return document, "published"
    except SnapshotNotFoundError:
        logger.info("No published snapshot, serving static baseline")
    except SnapshotValidationError as e:
        logger.error(f"Published snapshot unusable, serving static baseline: {e}")

    return build_baseline_snapshot(spot_db).to_dict(), "static"
