"""Restore service — failure-atomic replacement of the live database and assets.

One restore runs through::

    classify → extract (archives) → validate → snapshot → swap → verify
        → commit | rollback → cleanup

Nothing live is touched before ``swap``. From ``swap`` on the run must end
in commit or rollback; a failed rollback is surfaced as ``RollbackFailed``.
"""

from __future__ import annotations

import shutil
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from clinic.core.errors import (
    ArtifactNotFound,
    CorruptArchive,
    CorruptBackup,
    IntegrityError,
    LegacyBackupFormat,
    OperationInProgress,
    RestoreError,
    RollbackFailed,
    SnapshotFailed,
    SwapFailed,
    UnpackError,
    VerificationFailed,
)
from clinic.core.events import EventLog, Stage
from clinic.models.backup_record import BackupFormat
from clinic.utils import file_set, remove_path, sqlite_sidecars

if TYPE_CHECKING:
    from clinic.config import Config
    from clinic.core.archive import ArchiveCodec
    from clinic.core.integrity import IntegrityProbe
    from clinic.data.database import Database
    from clinic.models.probe_result import ProbeResult

_RAW_DB_SUFFIXES = {".db", ".sqlite", ".sqlite3"}


@dataclass
class RestoreResult:
    """Result of a successful restore."""

    source: str
    format: BackupFormat
    probe: ProbeResult
    assets_restored: int = 0
    warnings: list[str] = field(default_factory=list)


@dataclass
class _Snapshot:
    """Pre-swap copy of live state. ``database``/``assets`` are None when the live item was absent."""

    root: Path
    database: Path | None
    assets: Path | None
    covers_assets: bool


def _replace_file(source: Path, target: Path) -> None:
    """Copy *source* next to *target*, then rename it over *target*."""
    staging = target.with_name(target.name + ".restoring")
    try:
        shutil.copyfile(source, staging)
        staging.replace(target)
    except OSError:
        staging.unlink(missing_ok=True)
        raise


def _replace_tree(source: Path | None, target: Path) -> None:
    """Make *target* an exact copy of *source* (an empty directory if None)."""
    staging = target.with_name(target.name + ".restoring")
    remove_path(staging)
    try:
        if source is None:
            staging.mkdir(parents=True)
        else:
            shutil.copytree(source, staging, symlinks=True)
        if target.exists():
            shutil.rmtree(target)
        staging.replace(target)
    except OSError:
        remove_path(staging)
        raise


class RestoreService:
    """Restores a backup artifact over the live database (and asset tree)."""

    OPERATION = "restore"

    def __init__(
        self,
        config: Config,
        database: Database,
        probe: IntegrityProbe,
        codec: ArchiveCodec,
        events: EventLog,
        operation_lock: threading.Lock,
    ) -> None:
        self._config = config
        self._db = database
        self._probe = probe
        self._codec = codec
        self._events = events
        self._lock = operation_lock
        self._restoring = False

    @property
    def is_restoring(self) -> bool:
        return self._restoring

    def restore_backup(self, path: Path | str) -> RestoreResult:
        """Restore *path* (a ``.db`` copy or ``.zip`` archive). Raises a RestoreError subclass."""
        if not self._lock.acquire(blocking=False):
            raise OperationInProgress("A backup or restore is already running")
        self._restoring = True
        try:
            return self._restore(Path(path).expanduser())
        finally:
            self._restoring = False
            self._lock.release()

    def _restore(self, path: Path) -> RestoreResult:
        run = self._events.begin_run()
        track = self._events.track
        staging: list[Path] = []
        snapshot: _Snapshot | None = None
        keep_snapshot = False

        try:
            with track(self.OPERATION, run, Stage.CLASSIFY):
                artifact, fmt = self._classify(path)
                logger.info(f"Restoring {fmt} backup: {artifact}")

            candidate = artifact
            extracted_assets: Path | None = None
            if fmt is BackupFormat.DB_WITH_ASSETS:
                with track(self.OPERATION, run, Stage.EXTRACT):
                    extract_dir = self._make_staging("extract", RestoreError)
                    staging.append(extract_dir)
                    try:
                        layout = self._codec.unpack(artifact, extract_dir)
                    except UnpackError as e:
                        raise CorruptArchive(f"Backup archive is corrupt: {e}") from e
                    candidate, extracted_assets = layout.database_path, layout.assets_dir

            with track(self.OPERATION, run, Stage.VALIDATE):
                try:
                    candidate_probe = self._probe.probe(candidate)
                except IntegrityError as e:
                    raise CorruptBackup(f"Backup database is unusable: {e}") from e

            with track(self.OPERATION, run, Stage.SNAPSHOT):
                snapshot = self._snapshot_live(fmt is BackupFormat.DB_WITH_ASSETS)
                staging.append(snapshot.root)

            failed_stage = Stage.SWAP
            try:
                with track(self.OPERATION, run, Stage.SWAP):
                    self._swap(candidate, extracted_assets, fmt)
                failed_stage = Stage.VERIFY
                with track(self.OPERATION, run, Stage.VERIFY):
                    restored_probe = self._reopen_and_verify()
            except BaseException as e:  # past this point: commit or rollback, never abandon
                try:
                    self._roll_back(run, snapshot)
                except RollbackFailed:
                    keep_snapshot = True
                    raise
                if not isinstance(e, Exception):
                    raise
                error_cls = SwapFailed if failed_stage is Stage.SWAP else VerificationFailed
                raise error_cls(f"Restore {failed_stage} failed, live state rolled back: {e}") from e

            with track(self.OPERATION, run, Stage.COMMIT):
                result = RestoreResult(
                    source=str(artifact),
                    format=fmt,
                    probe=restored_probe,
                    assets_restored=len(file_set(self._config.assets_dir))
                    if fmt is BackupFormat.DB_WITH_ASSETS
                    else 0,
                )
                if restored_probe.row_counts != candidate_probe.row_counts:
                    result.warnings.append("Row counts changed between validation and reopen")
                    logger.warning(result.warnings[-1])
                for directory in staging:
                    remove_path(directory)

            logger.info(
                f"Restore completed from {artifact.name}: "
                f"{restored_probe.total_rows} rows in critical tables"
            )
            return result

        finally:
            with track(self.OPERATION, run, Stage.CLEANUP):
                for directory in staging:
                    if keep_snapshot and snapshot is not None and directory == snapshot.root:
                        continue
                    if directory.exists():
                        remove_path(directory)

    # ── Stages ──

    def _classify(self, path: Path) -> tuple[Path, BackupFormat]:
        suffix = path.suffix.lower()
        if suffix == ".json":
            raise LegacyBackupFormat(f"Legacy JSON backups are handled by data migration: {path}")
        if suffix == ".zip":
            candidates = [(path, BackupFormat.DB_WITH_ASSETS)]
        elif suffix in _RAW_DB_SUFFIXES:
            candidates = [(path, BackupFormat.DB_ONLY)]
        else:
            if path.with_name(path.name + ".json").is_file():
                raise LegacyBackupFormat(
                    f"Legacy JSON backups are handled by data migration: {path}.json"
                )
            candidates = [
                (path.with_name(path.name + ".zip"), BackupFormat.DB_WITH_ASSETS),
                (path.with_name(path.name + ".db"), BackupFormat.DB_ONLY),
            ]

        for candidate, fmt in candidates:
            if candidate.is_file():
                return candidate, fmt
        raise ArtifactNotFound(f"Backup file not found: {path}")

    def _make_staging(self, kind: str, error_cls: type[RestoreError]) -> Path:
        root = self._config.staging_dir
        try:
            root.mkdir(parents=True, exist_ok=True)
            return Path(tempfile.mkdtemp(prefix=f"{kind}_", dir=root))
        except OSError as e:
            raise error_cls(f"Cannot create staging directory under {root}: {e}") from e

    def _snapshot_live(self, covers_assets: bool) -> _Snapshot:
        root = self._make_staging("snapshot", SnapshotFailed)
        live_db = self._db.path
        live_assets = self._config.assets_dir
        try:
            self._db.checkpoint()
            db_copy = None
            if live_db.is_file():
                db_copy = root / live_db.name
                shutil.copy2(live_db, db_copy)
                if db_copy.stat().st_size != live_db.stat().st_size:
                    raise OSError(f"snapshot size mismatch for {live_db}")

            assets_copy = None
            if covers_assets and live_assets.is_dir():
                assets_copy = root / "assets"
                shutil.copytree(live_assets, assets_copy, symlinks=True)
        except OSError as e:
            remove_path(root)
            raise SnapshotFailed(f"Could not snapshot live state: {e}") from e

        logger.debug(f"Snapshot taken at {root}")
        return _Snapshot(root=root, database=db_copy, assets=assets_copy, covers_assets=covers_assets)

    def _swap(self, candidate: Path, extracted_assets: Path | None, fmt: BackupFormat) -> None:
        live_db = self._db.path
        self._db.close()
        for sidecar in sqlite_sidecars(live_db):
            sidecar.unlink(missing_ok=True)
        live_db.parent.mkdir(parents=True, exist_ok=True)
        _replace_file(candidate, live_db)

        if fmt is BackupFormat.DB_WITH_ASSETS:
            if extracted_assets is None:
                logger.warning("Archive has no asset directory; live assets will be emptied")
            _replace_tree(extracted_assets, self._config.assets_dir)

    def _reopen_and_verify(self) -> ProbeResult:
        self._db.reopen()
        self._db.ping()
        return self._probe.probe(self._db.path)

    def _roll_back(self, run: int, snapshot: _Snapshot) -> None:
        with self._events.track(self.OPERATION, run, Stage.ROLLBACK):
            live_db = self._db.path
            live_assets = self._config.assets_dir
            try:
                self._db.close()
                for sidecar in sqlite_sidecars(live_db):
                    sidecar.unlink(missing_ok=True)
                if snapshot.database is not None:
                    shutil.copyfile(snapshot.database, live_db)
                else:
                    live_db.unlink(missing_ok=True)

                if snapshot.covers_assets:
                    if live_assets.exists():
                        shutil.rmtree(live_assets)
                    if snapshot.assets is not None:
                        shutil.copytree(snapshot.assets, live_assets, symlinks=True)

                self._db.open()
                if snapshot.database is not None:
                    self._db.ping()
                    self._probe.probe(live_db)
            except Exception as e:
                logger.critical(
                    f"ROLLBACK FAILED: the clinic database may be unusable, "
                    f"manual recovery required from {snapshot.root}: {e}"
                )
                raise RollbackFailed(f"Rollback after failed restore did not succeed: {e}", snapshot.root) from e

        logger.warning("Restore failed; previous database and assets were restored")
