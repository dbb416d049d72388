"""Clinic backup settings stored as config.json in the application data directory."""

from __future__ import annotations

import json
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator
from uuid import uuid4

from loguru import logger

from clinic.utils import remove_path

# Where the clinic application keeps its data
_DEFAULT_DATA_DIR = Path.home() / "Documents" / "DentalClinic"

DEFAULT_CRITICAL_TABLES = (
    "patients",
    "appointments",
    "payments",
    "treatments",
    "dental_treatments",
    "dental_treatment_images",
)


class Config:
    """
    Settings for the backup subsystem.

    Path settings left empty fall back to locations under ``data_dir``.
    """

    _DEFAULTS: dict[str, Any] = {
        "database_path": "",
        "assets_dir": "",
        "backup_path": "",
        "staging_dir": "",
        "registry_limit": 50,
        "machine_id": "",
        "critical_tables": list(DEFAULT_CRITICAL_TABLES),
        "auto_backup": {
            "enabled": False,
            "frequency": "daily",
            "keep_count": 10,
            "include_assets": False,
        },
    }

    def __init__(self, data_dir: Path | None = None) -> None:
        self._data: dict[str, Any] = {}
        self._dir = data_dir or _DEFAULT_DATA_DIR
        self._path = self._dir / "config.json"
        self._lock = threading.Lock()
        self._defer_save = False
        self._load()

    def _load(self) -> None:
        """Read config.json over a fresh copy of the defaults."""
        self._data = json.loads(json.dumps(self._DEFAULTS))  # deep copy defaults
        if self._path.exists():
            try:
                with open(self._path, encoding="utf-8") as f:
                    user_data = json.load(f)
                self._deep_merge(self._data, user_data)
            except (json.JSONDecodeError, OSError) as e:
                logger.warning(f"Failed to load config, using defaults: {e}")

        # Provenance stamp for backup records
        if not self._data.get("machine_id"):
            self._data["machine_id"] = uuid4().hex[:12]
            self._save()

    def _deep_merge(self, base: dict, override: dict) -> None:
        """Merge nested dicts of *override* into *base* in place."""
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def _save(self) -> None:
        """Write config.json via a temp file; failures are logged."""
        if self._defer_save:
            return
        with self._lock:
            tmp_path = self._path.with_suffix(".tmp")
            try:
                self._dir.mkdir(parents=True, exist_ok=True)
                with open(tmp_path, "w", encoding="utf-8") as f:
                    json.dump(self._data, f, ensure_ascii=False, indent=2)
                tmp_path.replace(self._path)
            except OSError as e:
                logger.error(f"Failed to save config: {e}")
                remove_path(tmp_path)

    @contextmanager
    def batch_update(self) -> Iterator[None]:
        """Defer saving until the block exits, then write once."""
        self._defer_save = True
        try:
            yield
        finally:
            self._defer_save = False
            self._save()

    # ── Generic access ──

    def get(self, key: str, default: Any = None) -> Any:
        """Read a value by dotted key, e.g. ``auto_backup.frequency``."""
        parts = key.split(".")
        node = self._data
        for part in parts:
            if isinstance(node, dict) and part in node:
                node = node[part]
            else:
                return default
        return node

    def set(self, key: str, value: Any) -> None:
        """Write a value by dotted key, creating nested dicts as needed."""
        parts = key.split(".")
        node = self._data
        for part in parts[:-1]:
            if part not in node or not isinstance(node[part], dict):
                node[part] = {}
            node = node[part]
        node[parts[-1]] = value
        self._save()

    def _path_setting(self, key: str, default: Path) -> Path:
        raw = self._data.get(key, "")
        return Path(raw) if raw else default

    # ── Typed properties ──

    @property
    def data_dir(self) -> Path:
        return self._dir

    @property
    def database_path(self) -> Path:
        return self._path_setting("database_path", self._dir / "clinic.db")

    @database_path.setter
    def database_path(self, value: Path | None) -> None:
        self.set("database_path", str(value) if value else "")

    @property
    def assets_dir(self) -> Path:
        return self._path_setting("assets_dir", self._dir / "dental_images")

    @assets_dir.setter
    def assets_dir(self, value: Path | None) -> None:
        self.set("assets_dir", str(value) if value else "")

    @property
    def backup_path(self) -> Path:
        return self._path_setting("backup_path", self._dir / "backups")

    @backup_path.setter
    def backup_path(self, value: Path | None) -> None:
        self.set("backup_path", str(value) if value else "")

    @property
    def staging_dir(self) -> Path:
        return self._path_setting("staging_dir", self._dir / ".staging")

    @property
    def registry_path(self) -> Path:
        return self._dir / "backup_registry.json"

    @property
    def registry_limit(self) -> int:
        return int(self._data.get("registry_limit", 50))

    @property
    def machine_id(self) -> str:
        return self._data.get("machine_id", "")

    @property
    def critical_tables(self) -> tuple[str, ...]:
        return tuple(self._data.get("critical_tables", DEFAULT_CRITICAL_TABLES))

    @property
    def auto_backup(self) -> dict[str, Any]:
        return self._data.get("auto_backup", {})
