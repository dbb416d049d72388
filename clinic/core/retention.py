"""Retention — delete individual backups and trim to the N most recent."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from clinic.core.errors import BackupNotFound, BackupSubsystemError

if TYPE_CHECKING:
    from clinic.data.registry import BackupRegistry


class RetentionPolicy:
    """Removes backup artifacts together with their registry entries."""

    DEFAULT_KEEP = 10

    def __init__(self, registry: BackupRegistry) -> None:
        self._registry = registry

    def delete_backup(self, name: str) -> None:
        """Delete one backup by registry name. Raises BackupNotFound for unknown names."""
        record = self._registry.get(name)
        if record is None:
            raise BackupNotFound(f"Backup not found in registry: {name}")

        artifact = Path(record.path)
        try:
            artifact.unlink(missing_ok=True)
        except OSError as e:
            raise BackupSubsystemError(f"Failed to delete backup file {artifact}: {e}") from e

        self._registry.remove(name)
        logger.info(f"Deleted backup: {name}")

    def delete_old_backups(self, keep_count: int = DEFAULT_KEEP) -> list[str]:
        """Keep the *keep_count* newest backups, delete the rest. Returns deleted names."""
        if keep_count < 0:
            raise ValueError(f"keep_count must be >= 0, got {keep_count}")

        backups = sorted(self._registry.list(), key=lambda r: r.created_at, reverse=True)
        deleted: list[str] = []
        for record in backups[keep_count:]:
            try:
                self.delete_backup(record.name)
                deleted.append(record.name)
            except BackupSubsystemError as e:
                logger.warning(f"Failed to delete old backup {record.name}: {e}")

        if deleted:
            logger.info(f"Cleaned up {len(deleted)} old backup(s), keeping {keep_count} most recent")
        return deleted
