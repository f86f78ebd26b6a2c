"""Manual override store.

Overrides are a sparse, hand-curated map kept in one JSON blob:

    {
      "locations": {
        "honolua": {"score": 2.0, "text": "Closed for a reef survey.", "note": "...", "updatedAt": "..."}
      },
      "updatedAt": "...",
      "syncedFrom": "file"
    }

Fusion only ever calls load(), which never raises: an unreachable or corrupt
store is treated as an empty override set.
"""

import logging
from typing import Optional

from maui_snorkel.core.model import OVERRIDES_KEY, ManualOverride, SourceStatus, is_valid_score, utc_now
from maui_snorkel.core.spots import SpotDatabase
from maui_snorkel.storage.blob_store import BlobNotFoundError, BlobStoreError, LocalBlobStore


logger = logging.getLogger(__name__)

COMMENT_KEYS = ("_comment", "_example")


def parse_overrides(document) -> dict[str, ManualOverride]:
    """Parse an override document, dropping invalid entries with a warning.

    Raises:
        ValueError: If the document itself is not an override document.
    """
    if not isinstance(document, dict):
        raise ValueError("Override document must be a JSON object")

    locations = document.get("locations") or {}
    if not isinstance(locations, dict):
        raise ValueError("Override document 'locations' must be an object")

    overrides = {}
    for location_id, entry in locations.items():
        if location_id.startswith("_"):
            continue
        try:
            overrides[location_id] = ManualOverride.from_dict(location_id, entry)
        except ValueError as e:
            logger.warning(f"Dropping invalid override: {e}")
    return overrides


class OverrideStore:
    """Reads and edits the manual override blob."""

    def __init__(
        self,
        blob_store: LocalBlobStore,
        spot_db: Optional[SpotDatabase] = None,
        key: str = OVERRIDES_KEY,
    ):
        """Initialize the override store.

        Args:
            blob_store: Where the override document lives.
            spot_db: Used to reject overrides for unknown locations when editing.
            key: Blob key of the override document.
        """
        self.blob_store = blob_store
        self.spot_db = spot_db
        self.key = key

    def load(self) -> tuple[dict[str, ManualOverride], SourceStatus]:
        """Load overrides for a fusion run. Never raises.

        Returns:
            (overrides by location id, status). A missing document is an empty,
            fresh override set; an unreadable one is empty and unavailable.
        """
        try:
            document, _ = self.blob_store.get_json(self.key)
        except BlobNotFoundError:
            logger.info("No manual overrides stored")
            return {}, SourceStatus.FRESH
        except BlobStoreError as e:
            logger.warning(f"Override store unavailable, continuing without overrides: {e}")
            return {}, SourceStatus.UNAVAILABLE

        try:
            overrides = parse_overrides(document)
        except ValueError as e:
            logger.warning(f"Override document unreadable, continuing without overrides: {e}")
            return {}, SourceStatus.UNAVAILABLE

        if overrides:
            logger.info(f"Loaded {len(overrides)} manual overrides: {', '.join(sorted(overrides))}")
        return overrides, SourceStatus.FRESH

    def _read_document(self) -> dict:
        try:
            document, _ = self.blob_store.get_json(self.key)
        except BlobNotFoundError:
            return {"locations": {}, "updatedAt": None}
        if not isinstance(document, dict):
            raise BlobStoreError(f"{self.key} is not an override document")
        if not isinstance(document.get("locations"), dict):
            document["locations"] = {}
        return document

    def _save(self, document: dict) -> None:
        document["updatedAt"] = utc_now().isoformat()
        self.blob_store.put_json(self.key, document)

    def _check_location(self, location_id: str) -> None:
        if self.spot_db is not None and self.spot_db.get_spot(location_id) is None:
            raise ValueError(f"Unknown location: {location_id}")

    def list(self) -> dict[str, ManualOverride]:
        """All current overrides.

        Raises:
            BlobStoreError: If the store cannot be read.
        """
        return parse_overrides(self._read_document())

    def set(
        self,
        location_id: str,
        score: Optional[float] = None,
        text: Optional[str] = None,
        note: Optional[str] = None,
    ) -> ManualOverride:
        """Set or update the override for one location.

        Fields not given keep their previous value.

        Raises:
            ValueError: For unknown locations, a score outside 0-10, or no score and no text.
        """
        self._check_location(location_id)
        if score is None and not text:
            raise ValueError("At least one of score or text is required")
        if score is not None and not is_valid_score(score):
            raise ValueError(f"Override score must be between 0 and 10, got {score!r}")

        document = self._read_document()
        entry = dict(document["locations"].get(location_id) or {})
        if score is not None:
            entry["score"] = float(score)
        if text:
            entry["text"] = text
        if note:
            entry["note"] = note
        entry["updatedAt"] = utc_now().isoformat()

        override = ManualOverride.from_dict(location_id, entry)
        document["locations"][location_id] = entry
        self._save(document)

        logger.info(f"Override set for {location_id}")
        return override

    def remove(self, location_id: str) -> bool:
        """Remove the override for one location. Returns False if there was none."""
        document = self._read_document()
        if location_id not in document["locations"]:
            return False
        del document["locations"][location_id]
        self._save(document)
        logger.info(f"Override removed for {location_id}")
        return True

    def sync(self, document: dict, synced_from: str = "file") -> int:
        """Replace the whole override document, e.g. from a checked-in file.

        Comment keys are stripped. Returns the number of location entries stored.

        Raises:
            ValueError: If the document is not an override document.
        """
        if not isinstance(document, dict):
            raise ValueError("Override document must be a JSON object")

        document = {k: v for k, v in document.items() if k not in COMMENT_KEYS}
        locations = document.get("locations") or {}
        if not isinstance(locations, dict):
            raise ValueError("Override document 'locations' must be an object")
        document["locations"] = {
            location_id: entry for location_id, entry in locations.items()
            if location_id not in COMMENT_KEYS
        }

        for location_id in document["locations"]:
            self._check_location(location_id)

        document["syncedFrom"] = synced_from
        self._save(document)

        count = len(document["locations"])
        logger.info(f"Synced {count} overrides from {synced_from}")
        return count
