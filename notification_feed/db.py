"""SQLite key/value operations for feed state."""

import sqlite3
from typing import Optional


def init_db(db_path: str) -> sqlite3.Connection:
    """
    Open the feed state database, creating the `meta` table on first use.

    Each row of `meta` holds one serialized record, such as the JSON array
    of dismissed notification ids, under a fixed key.

    Args:
        db_path: SQLite file to open or create.

    Returns:
        An open connection; the caller closes it.
    """
    conn = sqlite3.connect(db_path)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS meta (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
    """)
    conn.commit()
    return conn


def get_meta(conn: sqlite3.Connection, key: str) -> Optional[str]:
    """Return the record stored under `key`, or None if it was never written."""
    row = conn.execute("SELECT value FROM meta WHERE key = ?", (key,)).fetchone()
    return row[0] if row else None


def set_meta(conn: sqlite3.Connection, key: str, value: str) -> None:
    """Replace the record under `key` in a single committed statement."""
    with conn:
        conn.execute(
            "INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)",
            (key, value)
        )
