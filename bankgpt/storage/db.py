"""
Database connection management.

Provides SQLite connections for the conversation store, usage ledger
and response cache.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = "bankgpt.db"


def get_connection(db_path: str = DEFAULT_DB_PATH, timeout: float = 2.0) -> sqlite3.Connection:
    """Create and return a SQLite database connection.

    Args:
        db_path: Path to SQLite database file
        timeout: Seconds to wait on a locked database before failing

    Returns:
        SQLite connection with foreign key constraints enabled
    """
    path = Path(db_path)
    if path.parent and not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), timeout=timeout)
    conn.execute("PRAGMA foreign_keys = ON")
    return conn
