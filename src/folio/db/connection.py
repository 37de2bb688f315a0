"""SQLite connection layer for the full-text search index."""

from __future__ import annotations

import sqlite3
from pathlib import Path


class Database:
    """SQLite database file holding the FTS5 search index."""

    def __init__(self, db_path: Path | str) -> None:
        """Store the database path. Call connect() to open the connection.

        Args:
            db_path: Path to the SQLite database file (created if missing).
        """
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    def connect(self, *, shared: bool = False) -> sqlite3.Connection:
        """Open a connection and return it.

        Args:
            shared: Allow the connection to be used from threads other than the
                one that opened it. The caller must serialise access.
        """
        conn = sqlite3.connect(self.db_path, check_same_thread=not shared)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    def __enter__(self) -> sqlite3.Connection:
        self._conn = self.connect()
        return self._conn

    def __exit__(self, *args: object) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None
