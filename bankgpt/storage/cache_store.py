"""
Key-value backends for the response cache.

Both backends expose get/set-with-TTL/ping and may raise on failure;
the cache layer above them decides how failures are handled.
"""

import threading
import time
from typing import Callable, Dict, Optional, Tuple

from .db import DEFAULT_DB_PATH, get_connection

Clock = Callable[[], float]


class InMemoryCacheBackend:
    """Process-local cache. Entries expire lazily on read."""

    def __init__(self, clock: Clock = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: str, ttl: float) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl)

    def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        return len(self._entries)


class SQLiteCacheBackend:
    """Cache persisted in the response_cache table.

    Uses wall-clock time so entries survive process restarts.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH, clock: Clock = time.time):
        self.db_path = db_path
        self._clock = clock
        initialize_cache_schema(db_path)

    def get(self, key: str) -> Optional[str]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT value, expires_at FROM response_cache WHERE key = ?",
                (key,)
            ).fetchone()
            if row is None:
                return None
            if self._clock() >= row[1]:
                conn.execute("DELETE FROM response_cache WHERE key = ?", (key,))
                conn.commit()
                return None
            return row[0]
        finally:
            conn.close()

    def set(self, key: str, value: str, ttl: float) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                "INSERT OR REPLACE INTO response_cache (key, value, expires_at) VALUES (?, ?, ?)",
                (key, value, self._clock() + ttl)
            )
            conn.commit()
        finally:
            conn.close()

    def ping(self) -> bool:
        conn = get_connection(self.db_path)
        try:
            conn.execute("SELECT 1 FROM response_cache LIMIT 1")
            return True
        finally:
            conn.close()


def initialize_cache_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the response_cache table if it doesn't exist."""
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS response_cache (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                expires_at REAL NOT NULL
            )
        """)
        conn.commit()
    finally:
        conn.close()
