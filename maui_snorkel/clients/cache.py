"""SQLite response cache shared by the HTTP clients."""

import hashlib
import json
import os
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional


def default_cache_dir() -> Path:
    """Cache directory from MAUI_SNORKEL_CACHE_DIR, else ~/.cache/maui-snorkel."""
    configured = os.environ.get("MAUI_SNORKEL_CACHE_DIR")
    cache_dir = Path(configured) if configured else Path.home() / ".cache" / "maui-snorkel"
    cache_dir.mkdir(parents=True, exist_ok=True)
    return cache_dir


def _utcnow() -> datetime:
    # Naive UTC, matching SQLite's CURRENT_TIMESTAMP
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ResponseCache:
    """Small TTL cache keyed by request identity, one table per client."""

    def __init__(self, table: str, ttl_seconds: int, cache_path: Optional[Path] = None):
        """Initialize the cache.

        Args:
            table: Table name, e.g. "buoy_cache".
            ttl_seconds: Entries older than this are not returned by default.
            cache_path: SQLite file. Defaults to <cache dir>/<table>.db
        """
        if cache_path is None:
            cache_path = default_cache_dir() / f"{table}.db"

        self.table = table
        self.ttl_seconds = ttl_seconds
        self.cache_path = cache_path
        self._init_cache()

    def _init_cache(self) -> None:
        with sqlite3.connect(self.cache_path) as conn:
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.table} (
                    cache_key TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.commit()

    @staticmethod
    def make_key(identity: Any) -> str:
        """Generate a cache key for a URL or parameter dict."""
        if not isinstance(identity, str):
            identity = json.dumps(identity, sort_keys=True)
        return hashlib.sha256(identity.encode()).hexdigest()[:32]

    def get(self, cache_key: str, max_age_seconds: Optional[int] = None) -> Optional[Any]:
        """Retrieve data from cache if still valid.

        Args:
            cache_key: Key from make_key.
            max_age_seconds: Oldest entry to accept. Defaults to the TTL; a
                longer age lets a caller fall back to an expired entry.
        """
        max_age = self.ttl_seconds if max_age_seconds is None else max_age_seconds
        with sqlite3.connect(self.cache_path) as conn:
            cursor = conn.execute(
                f"SELECT data, created_at FROM {self.table} WHERE cache_key = ?",
                (cache_key,),
            )
            row = cursor.fetchone()

            if row is None:
                return None

            data_json, created_at_str = row
            created_at = datetime.fromisoformat(created_at_str)

            # Expired rows are kept until overwritten so they can serve as a fallback
            if _utcnow() - created_at > timedelta(seconds=max_age):
                return None

            return json.loads(data_json)

    def set(self, cache_key: str, data: Any) -> None:
        """Store data in cache."""
        with sqlite3.connect(self.cache_path) as conn:
            conn.execute(
                f"""
                INSERT OR REPLACE INTO {self.table} (cache_key, data, created_at)
                VALUES (?, ?, ?)
                """,
                (cache_key, json.dumps(data), _utcnow().isoformat()),
            )
            conn.commit()
