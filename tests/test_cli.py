"""Tests for the command-line entry point."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from clinic.core.errors import RollbackFailed
from clinic.core.restore import RestoreService
from conftest import seed_clinic
from main import main


@pytest.fixture
def cli_data_dir(tmp_path: Path) -> Path:
    data_dir = tmp_path / "clinic-data"
    data_dir.mkdir()
    conn = sqlite3.connect(data_dir / "clinic.db")
    seed_clinic(conn, patients=3)
    conn.close()
    return data_dir


def run(data_dir: Path, *args: str) -> int:
    return main(["--data-dir", str(data_dir), *args])


class TestCli:
    def test_no_command_prints_help(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main([]) == 0
        assert "usage" in capsys.readouterr().out

    def test_backup_list_restore_delete(
        self, cli_data_dir: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        dest = tmp_path / "manual"
        assert run(cli_data_dir, "backup", "--dest", str(dest)) == 0
        assert "Backup created" in capsys.readouterr().out

        assert run(cli_data_dir, "list") == 0
        assert "manual" in capsys.readouterr().out

        assert run(cli_data_dir, "restore", str(dest) + ".db") == 0
        assert "patients: 3" in capsys.readouterr().out

        assert run(cli_data_dir, "delete", "manual") == 0
        assert not (tmp_path / "manual.db").exists()

    def test_backup_with_assets(self, cli_data_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert run(cli_data_dir, "backup", "--with-assets") == 0
        assert ".zip" in capsys.readouterr().out

    def test_prune(self, cli_data_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
        for _ in range(3):
            run(cli_data_dir, "backup")
        capsys.readouterr()
        assert run(cli_data_dir, "prune", "--keep", "1") == 0
        assert "Deleted 2 backup(s)" in capsys.readouterr().out

    def test_negative_keep_is_usage_error(self, cli_data_dir: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            run(cli_data_dir, "prune", "--keep", "-1")
        assert exc_info.value.code == 2

    def test_errors_exit_one(self, cli_data_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert run(cli_data_dir, "delete", "missing") == 1
        assert "Error" in capsys.readouterr().err

    def test_missing_restore_source(self, cli_data_dir: Path, tmp_path: Path) -> None:
        assert run(cli_data_dir, "restore", str(tmp_path / "nothing.db")) == 1

    def test_rollback_failure_exits_two(
        self,
        cli_data_dir: Path,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        def broken_restore(self, path):
            raise RollbackFailed("rollback did not succeed", tmp_path / "snapshot_x")

        monkeypatch.setattr(RestoreService, "restore_backup", broken_restore)
        assert run(cli_data_dir, "restore", str(tmp_path / "any.db")) == 2
        err = capsys.readouterr().err
        assert "ROLLBACK FAILED" in err
        assert "snapshot_x" in err

    def test_schedule_disabled_by_default(
        self, cli_data_dir: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert run(cli_data_dir, "schedule") == 1
        assert "disabled" in capsys.readouterr().err
