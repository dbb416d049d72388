"""Backup record models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from pathlib import Path
from typing import Any

from clinic.utils import format_size


class BackupFormat(StrEnum):
    """Layout of a backup artifact."""

    DB_ONLY = "db_only"  # raw database copy (.db)
    DB_WITH_ASSETS = "db_with_assets"  # ZIP: database + asset tree

    @property
    def extension(self) -> str:
        return ".zip" if self is BackupFormat.DB_WITH_ASSETS else ".db"


@dataclass
class BackupRecord:
    """One registered backup artifact (an element of backup_registry.json)."""

    name: str
    path: str
    size_bytes: int
    format: BackupFormat
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))
    engine_version: str = ""
    platform: str = ""
    source_machine: str = ""

    @property
    def includes_assets(self) -> bool:
        return self.format is BackupFormat.DB_WITH_ASSETS

    @property
    def formatted_size(self) -> str:
        return format_size(self.size_bytes)

    def exists(self) -> bool:
        return Path(self.path).is_file()

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "size_bytes": self.size_bytes,
            "format": str(self.format),
            "created_at": self.created_at.isoformat(),
            "engine_version": self.engine_version,
            "platform": self.platform,
            "source_machine": self.source_machine,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BackupRecord:
        """Rebuild a record from JSON. Raises KeyError/ValueError on malformed input."""
        created_at = datetime.fromisoformat(data["created_at"])
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return cls(
            name=data["name"],
            path=data["path"],
            size_bytes=int(data.get("size_bytes", 0)),
            format=BackupFormat(data.get("format", BackupFormat.DB_ONLY)),
            created_at=created_at,
            engine_version=data.get("engine_version", ""),
            platform=data.get("platform", ""),
            source_machine=data.get("source_machine", ""),
        )
