"""Application entry point — wires backup services and runs the command line."""

from __future__ import annotations

import argparse
import sys
import threading
import time
from pathlib import Path

from clinic.config import Config
from clinic.context import AppContext
from clinic.core.archive import ArchiveCodec
from clinic.core.backup import BackupService
from clinic.core.errors import BackupSubsystemError, RollbackFailed
from clinic.core.events import EventLog
from clinic.core.integrity import IntegrityProbe
from clinic.core.restore import RestoreService
from clinic.core.retention import RetentionPolicy
from clinic.core.scheduler import BackupScheduler
from clinic.data.database import Database
from clinic.data.registry import BackupRegistry
from clinic.logger import setup_logger


def create_context(data_dir: Path | None = None, log_to_file: bool = True) -> AppContext:
    """Wire all services and return an AppContext."""
    config = Config(data_dir)

    # Logger
    setup_logger(config.data_dir / "logs" if log_to_file else None)

    database = Database(config.database_path)
    database.open()
    events = EventLog()
    operation_lock = threading.Lock()

    registry = BackupRegistry(config.registry_path, limit=config.registry_limit)
    probe = IntegrityProbe(config.critical_tables)
    codec = ArchiveCodec()

    backup_service = BackupService(config, database, registry, probe, codec, events, operation_lock)
    restore_service = RestoreService(config, database, probe, codec, events, operation_lock)
    retention = RetentionPolicy(registry)

    auto = config.auto_backup
    scheduler = BackupScheduler(
        backup_service,
        retention,
        frequency=auto.get("frequency", "daily"),
        keep_count=int(auto.get("keep_count", RetentionPolicy.DEFAULT_KEEP)),
        include_assets=bool(auto.get("include_assets", False)),
    )

    return AppContext(
        config=config,
        database=database,
        events=events,
        registry=registry,
        probe=probe,
        codec=codec,
        backup_service=backup_service,
        restore_service=restore_service,
        retention=retention,
        scheduler=scheduler,
    )


def _keep_count(value: str) -> int:
    count = int(value)
    if count < 0:
        raise argparse.ArgumentTypeError(f"must be zero or more, got {count}")
    return count


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clinic-backup",
        description="Back up and restore the clinic database and image store.",
    )
    parser.add_argument("--data-dir", type=Path, default=None, help="Application data directory")
    subparsers = parser.add_subparsers(dest="command")

    backup_parser = subparsers.add_parser("backup", help="Create a backup")
    backup_parser.add_argument("--dest", type=Path, default=None, help="Destination file")
    backup_parser.add_argument(
        "--with-assets", action="store_true", help="Include the image directory (ZIP archive)"
    )
    backup_parser.set_defaults(func=cmd_backup)

    restore_parser = subparsers.add_parser("restore", help="Restore from a backup file")
    restore_parser.add_argument("path", type=Path)
    restore_parser.set_defaults(func=cmd_restore)

    list_parser = subparsers.add_parser("list", help="List registered backups")
    list_parser.set_defaults(func=cmd_list)

    delete_parser = subparsers.add_parser("delete", help="Delete a backup by name")
    delete_parser.add_argument("name")
    delete_parser.set_defaults(func=cmd_delete)

    prune_parser = subparsers.add_parser("prune", help="Keep only the N most recent backups")
    prune_parser.add_argument("--keep", type=_keep_count, default=RetentionPolicy.DEFAULT_KEEP)
    prune_parser.set_defaults(func=cmd_prune)

    schedule_parser = subparsers.add_parser("schedule", help="Run automatic backups until interrupted")
    schedule_parser.set_defaults(func=cmd_schedule)

    return parser


def cmd_backup(ctx: AppContext, args: argparse.Namespace) -> int:
    record = ctx.backup_service.create_backup(args.dest, include_assets=args.with_assets)
    print(f"Backup created: {record.path} ({record.formatted_size})")
    return 0


def cmd_restore(ctx: AppContext, args: argparse.Namespace) -> int:
    result = ctx.restore_service.restore_backup(args.path)
    print(f"Restored {result.source}")
    for table, count in result.probe.row_counts.items():
        print(f"  {table}: {count}")
    return 0


def cmd_list(ctx: AppContext, args: argparse.Namespace) -> int:
    backups = ctx.backup_service.list_backups()
    if not backups:
        print("No backups.")
    for record in backups:
        print(
            f"{record.name}\t{record.format}\t{record.formatted_size}\t"
            f"{record.created_at:%Y-%m-%d %H:%M:%S}\t{record.path}"
        )
    return 0


def cmd_delete(ctx: AppContext, args: argparse.Namespace) -> int:
    ctx.retention.delete_backup(args.name)
    print(f"Deleted {args.name}")
    return 0


def cmd_prune(ctx: AppContext, args: argparse.Namespace) -> int:
    deleted = ctx.retention.delete_old_backups(args.keep)
    print(f"Deleted {len(deleted)} backup(s)")
    return 0


def cmd_schedule(ctx: AppContext, args: argparse.Namespace) -> int:
    if not ctx.config.auto_backup.get("enabled", False):
        print("Automatic backups are disabled (auto_backup.enabled).", file=sys.stderr)
        return 1

    ctx.scheduler.start()
    print(f"Automatic backups running {ctx.scheduler.frequency}. Press Ctrl+C to stop.")
    try:
        while ctx.scheduler.is_running:
            time.sleep(1)
    except KeyboardInterrupt:
        print("Stopping scheduler...")
    finally:
        ctx.scheduler.stop()
    return 0


def main(argv: list[str] | None = None) -> int:
    """Command-line entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 0

    ctx = create_context(args.data_dir)
    try:
        return args.func(ctx, args)
    except RollbackFailed as e:
        print("=" * 72, file=sys.stderr)
        print("RESTORE ROLLBACK FAILED: the clinic database may be unusable.", file=sys.stderr)
        print(str(e), file=sys.stderr)
        print("Do not use the application until the database is recovered manually.", file=sys.stderr)
        print("=" * 72, file=sys.stderr)
        return 2
    except BackupSubsystemError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        ctx.database.close()


if __name__ == "__main__":
    sys.exit(main())
