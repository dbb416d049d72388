"""Exception hierarchy for the backup/restore subsystem.

Pre-condition and transform errors are raised before the live database is
touched. ``SwapFailed`` and ``VerificationFailed`` are raised after a
successful rollback. ``RollbackFailed`` means the live state is unknown.
"""

from __future__ import annotations

from pathlib import Path


class BackupSubsystemError(Exception):
    """Base class for every error raised by backup/restore operations."""


class OperationInProgress(BackupSubsystemError):
    """Another backup or restore currently holds the operation lock."""


# ── Integrity probe ──


class IntegrityError(BackupSubsystemError):
    """A database file failed the integrity probe."""

    def __init__(self, path: Path | str, message: str) -> None:
        super().__init__(f"{message}: {path}")
        self.path = Path(path)


class EmptyOrMissing(IntegrityError):
    """The database file does not exist or has zero length."""


class Unopenable(IntegrityError):
    """The engine could not read the file as a database."""


# ── Archive codec ──


class ArchiveError(BackupSubsystemError):
    pass


class PackError(ArchiveError):
    """Writing the archive failed; no partial archive is left behind."""


class UnpackError(ArchiveError):
    """The archive is not a valid backup container."""


# ── Backup creation ──


class BackupError(BackupSubsystemError):
    pass


class SourceUnavailable(BackupError):
    """The live database is missing or empty."""


class SourceUnhealthy(BackupError):
    """The live database could not be read by the engine."""


class CopyError(BackupError):
    """Copying the live database to the destination failed."""


class DestinationNotWritten(BackupError):
    """The artifact is missing or empty after writing."""


class BackupNotFound(BackupError):
    """No registry entry carries the requested name."""


# ── Restore ──


class RestoreError(BackupSubsystemError):
    rolled_back: bool = False


class ArtifactNotFound(RestoreError):
    """The restore input does not exist or has an unknown type."""


class LegacyBackupFormat(ArtifactNotFound):
    """Legacy JSON exports are handled by the data migration path."""


class CorruptArchive(RestoreError):
    pass


class CorruptBackup(RestoreError):
    pass


class SnapshotFailed(RestoreError):
    """The pre-restore copy of live state could not be taken."""


class SwapFailed(RestoreError):
    """Replacing live state failed; the snapshot was put back."""

    rolled_back = True


class VerificationFailed(RestoreError):
    """The swapped-in database did not pass the probe; the snapshot was put back."""

    rolled_back = True


class RollbackFailed(RestoreError):
    """
    Restoring the snapshot after a failed swap did not succeed.

    The application may be left without a working database. The snapshot is
    kept at ``snapshot_dir`` for manual recovery.
    """

    def __init__(self, message: str, snapshot_dir: Path | None = None) -> None:
        if snapshot_dir is not None:
            message = f"{message} (snapshot preserved at {snapshot_dir})"
        super().__init__(message)
        self.snapshot_dir = snapshot_dir
