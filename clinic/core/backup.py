"""Backup service — probe the live database, copy or pack it, verify, register."""

from __future__ import annotations

import shutil
import sqlite3
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from clinic.core.errors import (
    CopyError,
    DestinationNotWritten,
    EmptyOrMissing,
    IntegrityError,
    OperationInProgress,
    PackError,
    SourceUnavailable,
    SourceUnhealthy,
)
from clinic.core.events import EventLog, Stage
from clinic.models.backup_record import BackupFormat, BackupRecord
from clinic.utils import sqlite_sidecars

if TYPE_CHECKING:
    from clinic.config import Config
    from clinic.core.archive import ArchiveCodec
    from clinic.core.integrity import IntegrityProbe
    from clinic.data.database import Database
    from clinic.data.registry import BackupRegistry

# Extensions stripped from a caller-supplied destination before the
# format's own extension is applied.
_REPLACEABLE_SUFFIXES = {".db", ".zip", ".json", ".sqlite", ".sqlite3"}


class BackupService:
    """
    Creates backups of the live clinic database.

    The live connection stays open throughout: after a WAL checkpoint the
    database file is consistent and is copied at file level. The registry is
    only touched once the artifact is confirmed written.
    """

    OPERATION = "backup"

    def __init__(
        self,
        config: Config,
        database: Database,
        registry: BackupRegistry,
        probe: IntegrityProbe,
        codec: ArchiveCodec,
        events: EventLog,
        operation_lock: threading.Lock,
    ) -> None:
        self._config = config
        self._db = database
        self._registry = registry
        self._probe = probe
        self._codec = codec
        self._events = events
        self._lock = operation_lock

    @property
    def backup_root(self) -> Path:
        return self._config.backup_path

    def list_backups(self) -> list[BackupRecord]:
        return self._registry.list()

    def create_backup(
        self,
        destination: Path | str | None = None,
        include_assets: bool = False,
    ) -> BackupRecord:
        """Create a backup artifact and register it. Raises a BackupError subclass on failure."""
        if not self._lock.acquire(blocking=False):
            raise OperationInProgress("A backup or restore is already running")
        try:
            return self._create(destination, include_assets)
        finally:
            self._lock.release()

    def _create(self, destination: Path | str | None, include_assets: bool) -> BackupRecord:
        run = self._events.begin_run()
        fmt = BackupFormat.DB_WITH_ASSETS if include_assets else BackupFormat.DB_ONLY
        source = self._db.path

        with self._events.track(self.OPERATION, run, Stage.RESOLVE):
            dest = self._resolve_destination(destination, fmt)
            self._reject_live_target(dest, source)
            logger.info(f"Creating {fmt} backup: {dest}")

        with self._events.track(self.OPERATION, run, Stage.PROBE_SOURCE):
            self._db.checkpoint()
            try:
                source_probe = self._probe.probe(source)
            except EmptyOrMissing as e:
                raise SourceUnavailable(f"Live database unavailable: {e}") from e
            except IntegrityError as e:
                raise SourceUnhealthy(f"Live database failed integrity probe: {e}") from e
            if source_probe.total_rows == 0:
                logger.warning("Live database has no rows in critical tables; backup will be empty")

        with self._events.track(self.OPERATION, run, Stage.WRITE):
            error_cls = PackError if include_assets else CopyError
            try:
                dest.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise error_cls(f"Cannot create backup directory {dest.parent}: {e}") from e
            if include_assets:
                assets = self._config.assets_dir
                if not assets.is_dir():
                    logger.info(f"No asset directory at {assets}, packing database only")
                    assets = None
                self._codec.pack(source, assets, dest)
            else:
                self._copy_database(source, dest)

        with self._events.track(self.OPERATION, run, Stage.VERIFY_ARTIFACT):
            try:
                size = self._verify_artifact(source, dest, fmt)
            except Exception:
                dest.unlink(missing_ok=True)
                raise

        with self._events.track(self.OPERATION, run, Stage.REGISTER):
            record = BackupRecord(
                name=dest.stem,
                path=str(dest.resolve()),
                size_bytes=size,
                format=fmt,
                created_at=datetime.now(tz=timezone.utc),
                engine_version=f"sqlite {sqlite3.sqlite_version}",
                platform=sys.platform,
                source_machine=self._config.machine_id,
            )
            self._registry.upsert(record)

        logger.info(f"Backup created: {dest.name} ({record.formatted_size})")
        return record

    def _resolve_destination(self, destination: Path | str | None, fmt: BackupFormat) -> Path:
        if destination:
            dest = Path(destination).expanduser()
            if dest.suffix.lower() in _REPLACEABLE_SUFFIXES:
                dest = dest.with_suffix("")
            return dest.with_name(dest.name + fmt.extension)

        root = self.backup_root
        timestamp = datetime.now(tz=timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        dest = root / f"backup_{timestamp}{fmt.extension}"
        n = 1
        while dest.exists():
            dest = root / f"backup_{timestamp}_{n}{fmt.extension}"
            n += 1
        return dest

    def _reject_live_target(self, dest: Path, source: Path) -> None:
        live = [source, *sqlite_sidecars(source)]
        target = dest.resolve()
        if any(target == p.resolve() for p in live):
            raise CopyError(f"Backup destination would overwrite live data: {dest}")

    def _copy_database(self, source: Path, dest: Path) -> None:
        try:
            shutil.copyfile(source, dest)
        except shutil.SameFileError as e:
            raise CopyError(f"Backup destination is the source file: {dest}") from e
        except OSError as e:
            dest.unlink(missing_ok=True)
            raise CopyError(f"Failed to copy database to {dest}: {e}") from e

    def _verify_artifact(self, source: Path, dest: Path, fmt: BackupFormat) -> int:
        if not dest.is_file():
            raise DestinationNotWritten(f"Backup artifact was not created: {dest}")
        size = dest.stat().st_size
        if size == 0:
            raise DestinationNotWritten(f"Backup artifact is empty: {dest}")

        if fmt is BackupFormat.DB_ONLY:
            source_size = source.stat().st_size
            if size != source_size:
                logger.warning(
                    f"Backup size differs from source: {size} vs {source_size} bytes"
                )
            try:
                self._probe.probe(dest)
            except IntegrityError as e:
                raise CopyError(f"Backup copy failed integrity probe: {e}") from e
        return size
