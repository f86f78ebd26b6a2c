"""Versioned key/value blob store on the local filesystem.

Keys are flat names such as "conditions.json". Every stored blob carries an
etag, the SHA-256 of its bytes, which callers may pass back as ``if_match``
to detect that someone else replaced the blob in between.

Writes go to a temporary file in the same directory and are moved into place
with os.replace, so readers see either the old document or the new one.
"""

import hashlib
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional


logger = logging.getLogger(__name__)


class BlobStoreError(Exception):
    """Exception raised for blob store I/O errors."""

    pass


class BlobNotFoundError(BlobStoreError):
    """The requested key does not exist."""

    pass


class BlobConflictError(BlobStoreError):
    """The stored blob no longer matches the expected etag."""

    pass


def compute_etag(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def encode_json(document: Any) -> bytes:
    """Serialize a document the same way every time."""
    return (json.dumps(document, indent=2, ensure_ascii=False) + "\n").encode("utf-8")


@dataclass
class Blob:
    """A stored value and its etag."""
    key: str
    data: bytes
    etag: str

    def json(self) -> Any:
        """Decode the blob as JSON.

        Raises:
            BlobStoreError: If the bytes are not valid UTF-8 JSON.
        """
        try:
            return json.loads(self.data.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise BlobStoreError(f"Blob {self.key} is not valid JSON: {e}") from e


def default_data_dir() -> Path:
    """Blob root from MAUI_SNORKEL_DATA_DIR, else ./data."""
    return Path(os.environ.get("MAUI_SNORKEL_DATA_DIR", "data"))


class LocalBlobStore:
    """Blob store backed by one directory."""

    def __init__(self, root: Optional[Path] = None):
        """Initialize the store.

        Args:
            root: Directory holding the blobs. Defaults to MAUI_SNORKEL_DATA_DIR or ./data.
        """
        self.root = Path(root) if root is not None else default_data_dir()

    def _path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise BlobStoreError(f"Invalid blob key: {key!r}")
        return self.root / key

    def get(self, key: str) -> Blob:
        """Read a blob.

        Raises:
            BlobNotFoundError: If the key does not exist.
            BlobStoreError: On any other I/O failure.
        """
        path = self._path(key)
        try:
            data = path.read_bytes()
        except FileNotFoundError as e:
            raise BlobNotFoundError(f"No blob stored under {key}") from e
        except OSError as e:
            raise BlobStoreError(f"Failed to read {key}: {e}") from e
        return Blob(key=key, data=data, etag=compute_etag(data))

    def read_bytes(self, key: str) -> bytes:
        return self.get(key).data

    def get_json(self, key: str) -> tuple[Any, str]:
        """Read and decode a JSON blob, returning (document, etag)."""
        blob = self.get(key)
        return blob.json(), blob.etag

    def etag(self, key: str) -> Optional[str]:
        """Current etag of a key, or None if it does not exist."""
        try:
            return self.get(key).etag
        except BlobNotFoundError:
            return None

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def list(self, prefix: str = "") -> list[str]:
        """List stored keys, sorted, optionally filtered by prefix."""
        if not self.root.is_dir():
            return []
        return sorted(
            p.name for p in self.root.iterdir()
            if p.is_file() and not p.name.startswith(".") and p.name.startswith(prefix)
        )

    def put(self, key: str, data: bytes, if_match: Optional[str] = None) -> str:
        """Write a blob, replacing any previous value.

        Args:
            key: Blob key.
            data: Bytes to store.
            if_match: If given, only write when the stored etag still equals it.

        Returns:
            The etag of the new blob.

        Raises:
            BlobConflictError: If if_match is given and does not match.
            BlobStoreError: On I/O failure. The previous blob is left in place.
        """
        path = self._path(key)

        if if_match is not None:
            current = self.etag(key)
            if current != if_match:
                raise BlobConflictError(
                    f"{key} changed since it was read (expected {if_match[:12]}, "
                    f"found {current[:12] if current else 'nothing'})"
                )

        tmp_name = None
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=self.root, prefix=f".{key}.", suffix=".tmp", delete=False
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(data)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise BlobStoreError(f"Failed to write {key}: {e}") from e

        etag = compute_etag(data)
        logger.debug(f"Stored {key} ({len(data)} bytes, etag {etag[:12]})")
        return etag

    def put_json(self, key: str, document: Any, if_match: Optional[str] = None) -> str:
        return self.put(key, encode_json(document), if_match=if_match)

    def delete(self, key: str) -> bool:
        """Delete a blob. Returns False if it did not exist."""
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise BlobStoreError(f"Failed to delete {key}: {e}") from e
        return True
