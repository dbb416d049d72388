"""Shared utility functions."""

from __future__ import annotations

import shutil
from pathlib import Path

from loguru import logger


def format_size(size_bytes: int) -> str:
    """Format byte count to human-readable string."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
    else:
        return f"{size_bytes / (1024 * 1024 * 1024):.2f} GB"


def file_set(root: Path) -> set[str]:
    """Relative POSIX paths of every regular file under *root*."""
    if not root.is_dir():
        return set()
    return {p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_file()}


def remove_path(path: Path) -> bool:
    """Best-effort delete of a file or directory tree. Returns False on failure."""
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink(missing_ok=True)
        return True
    except OSError as e:
        logger.warning(f"Failed to remove {path}: {e}")
        return False


def sqlite_sidecars(db_path: Path) -> list[Path]:
    """Journal files SQLite may keep next to a database file."""
    return [db_path.with_name(db_path.name + suffix) for suffix in ("-wal", "-shm", "-journal")]
