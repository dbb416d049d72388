"""Backup registry — JSON array of backup records, newest first."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any

from loguru import logger

from clinic.models.backup_record import BackupRecord
from clinic.utils import remove_path

DEFAULT_LIMIT = 50


class BackupRegistry:
    """
    Persisted list of known backups (``backup_registry.json``).

    The document is the source of truth for *which* backups the UI shows;
    the filesystem decides whether each artifact still exists, and every
    :meth:`list` reconciles the two.

    Persistence is best-effort: a failed write is logged and swallowed so
    registry bookkeeping can never fail a backup or restore. The worst case
    is a valid artifact on disk that the registry does not list.
    """

    def __init__(self, path: Path, limit: int = DEFAULT_LIMIT) -> None:
        self._path = Path(path)
        self._limit = limit
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    # ── Persistence ──

    def _read(self) -> list[BackupRecord]:
        if not self._path.exists():
            return []
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.error(f"Failed to read backup registry: {e}")
            return []
        if not isinstance(data, list):
            logger.error(f"Backup registry is not a JSON array: {self._path}")
            return []

        records: list[BackupRecord] = []
        for item in data:
            try:
                records.append(BackupRecord.from_dict(item))
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping malformed registry entry {item!r}: {e}")
        return records

    def _write(self, records: list[BackupRecord]) -> bool:
        data: list[dict[str, Any]] = [r.to_dict() for r in records]
        tmp = self._path.with_suffix(".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            tmp.replace(self._path)
            return True
        except OSError as e:
            logger.error(f"Failed to save backup registry: {e}")
            remove_path(tmp)
            return False

    # ── Queries ──

    def list(self) -> list[BackupRecord]:
        """Records whose artifact exists, newest first; prunes stale and duplicate entries."""
        with self._lock:
            stored = self._read()
            seen: set[str] = set()
            valid: list[BackupRecord] = []
            for record in stored:
                if record.name in seen:
                    logger.debug(f"Dropping duplicate registry entry: {record.name}")
                    continue
                if not record.exists():
                    logger.info(f"Dropping stale registry entry (artifact gone): {record.name}")
                    continue
                seen.add(record.name)
                valid.append(record)

            if len(valid) != len(stored):
                self._write(valid)
            return valid

    def get(self, name: str) -> BackupRecord | None:
        """Look up a record by name, including entries whose artifact is gone."""
        with self._lock:
            for record in self._read():
                if record.name == name:
                    return record
        return None

    # ── Mutations ──

    def upsert(self, record: BackupRecord) -> None:
        """Replace the entry with the same name in place, or insert it at the front."""
        with self._lock:
            records = self._read()
            for i, existing in enumerate(records):
                if existing.name == record.name:
                    records[i] = record
                    logger.debug(f"Updated registry entry: {record.name}")
                    break
            else:
                records.insert(0, record)
                logger.debug(f"Added registry entry: {record.name}")

            if len(records) > self._limit:
                newest = sorted(records, key=lambda r: r.created_at, reverse=True)
                keep = {id(r) for r in newest[: self._limit]}
                dropped = [r.name for r in records if id(r) not in keep]
                records = [r for r in records if id(r) in keep]
                logger.debug(f"Registry capped at {self._limit}, dropped: {dropped}")

            self._write(records)

    def remove(self, name: str) -> BackupRecord | None:
        """Drop the entry with this name. Returns it, or None if absent."""
        with self._lock:
            records = self._read()
            for i, record in enumerate(records):
                if record.name == name:
                    del records[i]
                    self._write(records)
                    return record
        return None
