"""Logging configuration for the backup subsystem."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger


def setup_logger(log_dir: Path | None = None, level: str = "INFO") -> None:
    """Install a stderr sink and, with *log_dir*, a rotating clinic-backup.log."""
    logger.remove()

    # Console
    logger.add(
        sys.stderr,
        level=level,
        format="<green>{time:HH:mm:ss}</green> | <level>{level:<7}</level> | {message}",
        colorize=True,
    )

    # File
    if log_dir:
        log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_dir / "clinic-backup.log"),
            level="DEBUG",
            format=(
                "{time:YYYY-MM-DD HH:mm:ss} | {level:<7} | {name}:{line} | "
                "{extra} | {message}"
            ),
            rotation="5 MB",
            retention="7 days",
            encoding="utf-8",
        )
