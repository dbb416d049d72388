"""Automatic backups on a fixed interval, followed by retention."""

from __future__ import annotations

import threading
from enum import StrEnum
from typing import TYPE_CHECKING

from loguru import logger

from clinic.core.errors import BackupSubsystemError

if TYPE_CHECKING:
    from clinic.core.backup import BackupService
    from clinic.core.retention import RetentionPolicy
    from clinic.models.backup_record import BackupRecord


class BackupFrequency(StrEnum):
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"

    @property
    def seconds(self) -> int:
        return {
            BackupFrequency.HOURLY: 3600,
            BackupFrequency.DAILY: 86400,
            BackupFrequency.WEEKLY: 604800,
        }[self]


class BackupScheduler:
    """
    Runs ``create_backup`` + ``delete_old_backups`` every interval on a daemon thread.

    A failed cycle is logged and the loop keeps going.
    """

    def __init__(
        self,
        backup_service: BackupService,
        retention: RetentionPolicy,
        frequency: BackupFrequency | str = BackupFrequency.DAILY,
        keep_count: int = 10,
        include_assets: bool = False,
    ) -> None:
        self._backup = backup_service
        self._retention = retention
        self._frequency = BackupFrequency(frequency)
        self._keep_count = keep_count
        self._include_assets = include_assets
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def frequency(self) -> BackupFrequency:
        return self._frequency

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> BackupRecord | None:
        """One backup + retention cycle. Returns the new record, or None if it failed."""
        try:
            record = self._backup.create_backup(include_assets=self._include_assets)
        except BackupSubsystemError as e:
            logger.error(f"Scheduled backup failed: {e}")
            return None
        self._retention.delete_old_backups(self._keep_count)
        return record

    def start(self, interval: float | None = None) -> None:
        if self.is_running:
            logger.warning("Backup scheduler already running")
            return
        wait = interval if interval is not None else self._frequency.seconds
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._loop, args=(wait,), name="clinic-backup-scheduler", daemon=True
        )
        self._thread.start()
        logger.info(f"Automatic backups scheduled {self._frequency} (keep {self._keep_count})")

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.debug("Backup scheduler stopped")

    def _loop(self, wait: float) -> None:
        while not self._stop_event.wait(wait):
            try:
                self.run_once()
            except Exception:
                logger.exception("Unexpected error in backup scheduler loop")
