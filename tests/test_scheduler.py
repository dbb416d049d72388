"""Tests for the automatic backup scheduler."""

from __future__ import annotations

import time

import pytest

from clinic.context import AppContext
from clinic.core.scheduler import BackupFrequency, BackupScheduler


class TestBackupFrequency:
    @pytest.mark.parametrize(
        ("value", "seconds"), [("hourly", 3600), ("daily", 86400), ("weekly", 604800)]
    )
    def test_seconds(self, value: str, seconds: int) -> None:
        assert BackupFrequency(value).seconds == seconds

    def test_unknown_frequency(self, ctx: AppContext) -> None:
        with pytest.raises(ValueError):
            BackupScheduler(ctx.backup_service, ctx.retention, frequency="monthly")


class TestRunOnce:
    def test_backup_then_prune(self, ctx: AppContext) -> None:
        scheduler = BackupScheduler(ctx.backup_service, ctx.retention, keep_count=2)
        for _ in range(3):
            assert scheduler.run_once() is not None
        assert len(ctx.backup_service.list_backups()) == 2

    def test_includes_assets_when_configured(self, ctx: AppContext, assets) -> None:
        scheduler = BackupScheduler(ctx.backup_service, ctx.retention, include_assets=True)
        record = scheduler.run_once()
        assert record is not None
        assert record.includes_assets

    def test_failure_returns_none(self, ctx: AppContext) -> None:
        ctx.database.close()
        ctx.database.path.unlink()
        scheduler = BackupScheduler(ctx.backup_service, ctx.retention)
        assert scheduler.run_once() is None


class TestSchedulerThread:
    def test_default_context_scheduler_uses_config(self, ctx: AppContext) -> None:
        assert ctx.scheduler.frequency is BackupFrequency.DAILY
        assert not ctx.scheduler.is_running

    def test_start_and_stop(self, ctx: AppContext) -> None:
        scheduler = BackupScheduler(ctx.backup_service, ctx.retention, keep_count=50)
        scheduler.start(interval=0.05)
        try:
            assert scheduler.is_running
            deadline = time.monotonic() + 5
            while not ctx.backup_service.list_backups() and time.monotonic() < deadline:
                time.sleep(0.02)
        finally:
            scheduler.stop()

        assert not scheduler.is_running
        assert ctx.backup_service.list_backups()
