"""Integrity probe — read-only sanity checks on a database file."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable
from pathlib import Path

from loguru import logger

from clinic.config import DEFAULT_CRITICAL_TABLES
from clinic.core.errors import EmptyOrMissing, Unopenable
from clinic.models.probe_result import ProbeResult


class IntegrityProbe:
    """
    Asserts that a database file is minimally well-formed.

    The file is opened read-only (``mode=ro``) so a candidate under
    inspection is never mutated, and the handle is closed before returning
    so callers can copy or replace the same file straight away.

    Only total unreadability fails the probe. A critical table that cannot
    be counted is logged and reported in ``missing_tables``.
    """

    def __init__(self, critical_tables: Iterable[str] = DEFAULT_CRITICAL_TABLES) -> None:
        self._critical_tables = tuple(critical_tables)

    @property
    def critical_tables(self) -> tuple[str, ...]:
        return self._critical_tables

    def probe(self, path: Path | str) -> ProbeResult:
        path = Path(path)
        try:
            size = path.stat().st_size if path.is_file() else 0
        except OSError:
            size = 0
        if size == 0:
            raise EmptyOrMissing(path, "Database file is missing or empty")

        try:
            conn = sqlite3.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True)
        except sqlite3.Error as e:
            raise Unopenable(path, f"Cannot open database ({e})") from e

        try:
            return self._inspect(conn, path)
        finally:
            conn.close()

    def _inspect(self, conn: sqlite3.Connection, path: Path) -> ProbeResult:
        try:
            (table_count,) = conn.execute(
                "SELECT COUNT(*) FROM sqlite_master WHERE type='table'"
            ).fetchone()
        except sqlite3.Error as e:
            raise Unopenable(path, f"Catalog query failed ({e})") from e
        if table_count == 0:
            raise Unopenable(path, "Database contains no tables")

        try:
            rows = conn.execute("PRAGMA integrity_check").fetchall()
        except sqlite3.Error as e:
            raise Unopenable(path, f"Integrity check failed ({e})") from e
        verdict = [row[0] for row in rows]
        if verdict != ["ok"]:
            raise Unopenable(path, f"Integrity check reported: {'; '.join(verdict[:3])}")

        result = ProbeResult(path=str(path), table_count=int(table_count))
        for table in self._critical_tables:
            try:
                (count,) = conn.execute(f'SELECT COUNT(*) FROM "{table}"').fetchone()  # noqa: S608
                result.row_counts[table] = int(count)
            except sqlite3.Error as e:
                logger.warning(f"Could not query table {table} in {path.name}: {e}")
                result.missing_tables.append(table)

        try:
            violations = conn.execute("PRAGMA foreign_key_check").fetchall()
            result.foreign_key_violations = len(violations)
            if violations:
                logger.warning(
                    f"{len(violations)} foreign key violation(s) in {path.name}, "
                    f"first in table {violations[0][0]}"
                )
        except sqlite3.Error as e:
            logger.warning(f"Foreign key check failed for {path.name}: {e}")

        logger.debug(
            f"Probe ok: {path.name}, {result.table_count} tables, "
            f"{result.total_rows} rows in critical tables"
        )
        return result
