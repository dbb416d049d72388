"""Tests for the Config system."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from clinic.config import DEFAULT_CRITICAL_TABLES, Config


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(data_dir=tmp_path)


class TestConfig:
    def test_default_values(self, config: Config) -> None:
        assert config.registry_limit == 50
        assert config.machine_id  # Should be auto-generated
        assert config.critical_tables == DEFAULT_CRITICAL_TABLES
        assert config.auto_backup["keep_count"] == 10
        assert config.auto_backup["enabled"] is False

    def test_default_paths(self, config: Config, tmp_path: Path) -> None:
        assert config.database_path == tmp_path / "clinic.db"
        assert config.assets_dir == tmp_path / "dental_images"
        assert config.backup_path == tmp_path / "backups"
        assert config.staging_dir == tmp_path / ".staging"
        assert config.registry_path == tmp_path / "backup_registry.json"

    def test_path_setters(self, config: Config, tmp_path: Path) -> None:
        config.backup_path = tmp_path / "usb"
        assert config.backup_path == tmp_path / "usb"
        config.backup_path = None
        assert config.backup_path == tmp_path / "backups"

    def test_set_and_get(self, config: Config) -> None:
        config.set("auto_backup.frequency", "weekly")
        assert config.get("auto_backup.frequency") == "weekly"
        assert config.get("auto_backup.missing", "fallback") == "fallback"

    def test_persisted_across_instances(self, config: Config, tmp_path: Path) -> None:
        config.set("registry_limit", 20)
        reloaded = Config(data_dir=tmp_path)
        assert reloaded.registry_limit == 20
        assert reloaded.machine_id == config.machine_id

    def test_batch_update_single_write(self, config: Config, tmp_path: Path) -> None:
        with config.batch_update():
            config.set("registry_limit", 20)
            config.set("backup_path", "/new/path")
            on_disk = json.loads((tmp_path / "config.json").read_text(encoding="utf-8"))
            assert on_disk["registry_limit"] == 50
        on_disk = json.loads((tmp_path / "config.json").read_text(encoding="utf-8"))
        assert on_disk["registry_limit"] == 20
        assert config.backup_path == Path("/new/path")

    def test_partial_nested_override_keeps_defaults(self, tmp_path: Path) -> None:
        (tmp_path / "config.json").write_text(
            json.dumps({"auto_backup": {"frequency": "hourly"}}), encoding="utf-8"
        )
        config = Config(data_dir=tmp_path)
        assert config.auto_backup["frequency"] == "hourly"
        assert config.auto_backup["keep_count"] == 10

    def test_corrupt_file_falls_back_to_defaults(self, tmp_path: Path) -> None:
        (tmp_path / "config.json").write_text("{oops", encoding="utf-8")
        config = Config(data_dir=tmp_path)
        assert config.registry_limit == 50
