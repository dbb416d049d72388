"""Application context — service container for dependency injection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from clinic.config import Config
    from clinic.core.archive import ArchiveCodec
    from clinic.core.backup import BackupService
    from clinic.core.events import EventLog
    from clinic.core.integrity import IntegrityProbe
    from clinic.core.restore import RestoreService
    from clinic.core.retention import RetentionPolicy
    from clinic.core.scheduler import BackupScheduler
    from clinic.data.database import Database
    from clinic.data.registry import BackupRegistry


@dataclass
class AppContext:
    """
    Central service container.

    Built once at startup and handed to whatever needs backup/restore,
    instead of reaching for a process-wide singleton.
    """

    config: Config
    database: Database
    events: EventLog

    # Collaborators
    registry: BackupRegistry
    probe: IntegrityProbe
    codec: ArchiveCodec

    # Orchestrators
    backup_service: BackupService
    restore_service: RestoreService
    retention: RetentionPolicy
    scheduler: BackupScheduler
