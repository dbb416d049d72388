"""Live database handle — the single writer connection to the clinic database."""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path

from loguru import logger


class DatabaseClosed(RuntimeError):
    """The connection was requested while closed (e.g. mid-restore)."""


class Database:
    """
    Owns the application's one SQLite connection.

    Restore closes this handle before replacing the file and reopens it
    afterwards; between the two, :attr:`connection` raises
    :class:`DatabaseClosed` so no query can run against a half-swapped file.
    """

    def __init__(self, path: Path, timeout: float = 5.0) -> None:
        self._path = Path(path)
        self._timeout = timeout
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def connection(self) -> sqlite3.Connection:
        conn = self._conn
        if conn is None:
            raise DatabaseClosed(f"Database connection is closed: {self._path}")
        return conn

    def open(self) -> sqlite3.Connection:
        with self._lock:
            if self._conn is None:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                self._conn = sqlite3.connect(
                    str(self._path), timeout=self._timeout, check_same_thread=False
                )
                logger.debug(f"Opened database {self._path}")
            return self._conn

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            try:
                self._conn.close()
            finally:
                self._conn = None
            logger.debug(f"Closed database {self._path}")

    def reopen(self) -> sqlite3.Connection:
        with self._lock:
            self.close()
            return self.open()

    def checkpoint(self) -> None:
        """Flush committed WAL pages into the main file (best-effort)."""
        with self._lock:
            if self._conn is None:
                return
            try:
                self._conn.commit()
                self._conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
            except sqlite3.Error as e:
                logger.warning(f"WAL checkpoint failed: {e}")

    def ping(self) -> int:
        """Run a catalog query through the live connection; returns the table count."""
        with self._lock:
            row = self.connection.execute(
                "SELECT COUNT(*) FROM sqlite_master WHERE type='table'"
            ).fetchone()
            return int(row[0])
