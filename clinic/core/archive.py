"""Archive codec — pack a database plus asset tree into one ZIP, and back."""

from __future__ import annotations

import zipfile
import zlib
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from loguru import logger

from clinic.core.errors import PackError, UnpackError

DATABASE_ENTRY = "clinic.db"
# Archives written by earlier releases of the clinic application
LEGACY_DATABASE_ENTRIES = ("dental_clinic.db",)
ASSETS_PREFIX = "dental_images"


@dataclass
class ExtractedLayout:
    """Resolved paths of an unpacked archive."""

    database_path: Path
    assets_dir: Path | None = None

    @property
    def has_assets(self) -> bool:
        return self.assets_dir is not None


class ArchiveCodec:
    """
    Pure transform between files on disk and a backup ZIP.

    Entries are written one file at a time via ``ZipFile.write`` so the
    asset tree is streamed, never buffered whole in memory.
    """

    def pack(self, db_path: Path, assets_dir: Path | None, dest_path: Path) -> int:
        """Write the archive; returns the number of asset files packed."""
        db_path, dest_path = Path(db_path), Path(dest_path)
        asset_count = 0
        try:
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            with zipfile.ZipFile(dest_path, "w", zipfile.ZIP_DEFLATED) as zf:
                zf.write(db_path, DATABASE_ENTRY)
                if assets_dir is not None:
                    asset_count = self._write_tree(zf, Path(assets_dir))
        except (OSError, zipfile.BadZipFile, ValueError) as e:
            dest_path.unlink(missing_ok=True)
            raise PackError(f"Failed to write archive {dest_path}: {e}") from e

        logger.debug(f"Packed {dest_path.name}: database + {asset_count} asset file(s)")
        return asset_count

    def _write_tree(self, zf: zipfile.ZipFile, root: Path) -> int:
        count = 0
        zf.write(root, f"{ASSETS_PREFIX}/")
        for child in sorted(root.rglob("*")):
            entry = f"{ASSETS_PREFIX}/{child.relative_to(root).as_posix()}"
            if child.is_dir():
                zf.write(child, entry + "/")
            elif child.is_file():
                zf.write(child, entry)
                count += 1
        return count

    def unpack(self, archive_path: Path, dest_dir: Path) -> ExtractedLayout:
        """Extract into *dest_dir* (expected fresh and empty)."""
        archive_path, dest_dir = Path(archive_path), Path(dest_dir)
        try:
            with zipfile.ZipFile(archive_path, "r") as zf:
                for name in zf.namelist():
                    self._check_entry(name)
                zf.extractall(dest_dir)
        except (
            zipfile.BadZipFile,
            zipfile.LargeZipFile,
            zlib.error,
            OSError,
            EOFError,
            NotImplementedError,
            RuntimeError,
        ) as e:
            raise UnpackError(f"Not a valid backup archive: {archive_path} ({e})") from e

        database_path = self._find_database(dest_dir)
        if database_path is None:
            raise UnpackError(f"Database entry '{DATABASE_ENTRY}' not found in {archive_path}")

        assets_dir = dest_dir / ASSETS_PREFIX
        layout = ExtractedLayout(
            database_path=database_path,
            assets_dir=assets_dir if assets_dir.is_dir() else None,
        )
        logger.debug(
            f"Unpacked {archive_path.name} (assets: {'yes' if layout.has_assets else 'no'})"
        )
        return layout

    @staticmethod
    def _find_database(dest_dir: Path) -> Path | None:
        for entry in (DATABASE_ENTRY, *LEGACY_DATABASE_ENTRIES):
            candidate = dest_dir / entry
            if candidate.is_file():
                return candidate
        return None

    @staticmethod
    def _check_entry(name: str) -> None:
        entry = PurePosixPath(name.replace("\\", "/"))
        if entry.is_absolute() or ".." in entry.parts or (entry.parts and ":" in entry.parts[0]):
            raise UnpackError(f"Unsafe archive entry blocked: {name}")
