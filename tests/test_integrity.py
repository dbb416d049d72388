"""Tests for the IntegrityProbe."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from clinic.core.errors import EmptyOrMissing, Unopenable
from clinic.core.integrity import IntegrityProbe
from conftest import seed_clinic


@pytest.fixture
def probe() -> IntegrityProbe:
    return IntegrityProbe()


@pytest.fixture
def clinic_db(tmp_path: Path) -> Path:
    path = tmp_path / "clinic.db"
    conn = sqlite3.connect(path)
    seed_clinic(conn, patients=4)
    conn.close()
    return path


class TestProbeFailures:
    def test_missing_file(self, probe: IntegrityProbe, tmp_path: Path) -> None:
        with pytest.raises(EmptyOrMissing):
            probe.probe(tmp_path / "absent.db")

    def test_zero_length_file(self, probe: IntegrityProbe, tmp_path: Path) -> None:
        empty = tmp_path / "empty.db"
        empty.touch()
        with pytest.raises(EmptyOrMissing) as exc_info:
            probe.probe(empty)
        assert exc_info.value.path == empty

    def test_garbage_file(self, probe: IntegrityProbe, tmp_path: Path) -> None:
        garbage = tmp_path / "garbage.db"
        garbage.write_bytes(b"\x00\x01 not sqlite " * 300)
        with pytest.raises(Unopenable):
            probe.probe(garbage)

    def test_database_without_tables(self, probe: IntegrityProbe, tmp_path: Path) -> None:
        path = tmp_path / "bare.db"
        conn = sqlite3.connect(path)
        conn.execute("CREATE TABLE t (x)")
        conn.execute("DROP TABLE t")
        conn.commit()
        conn.close()
        assert path.stat().st_size > 0
        with pytest.raises(Unopenable):
            probe.probe(path)


class TestProbeResult:
    def test_counts_critical_tables(self, probe: IntegrityProbe, clinic_db: Path) -> None:
        result = probe.probe(clinic_db)
        assert result.row_counts["patients"] == 4
        assert result.count("appointments") == 1
        assert result.table_count == 5

    def test_missing_table_reported_not_fatal(self, probe: IntegrityProbe, clinic_db: Path) -> None:
        result = probe.probe(clinic_db)
        assert result.missing_tables == ["dental_treatments"]
        assert result.count("dental_treatments") is None

    def test_custom_table_list(self, clinic_db: Path) -> None:
        result = IntegrityProbe(["patients"]).probe(clinic_db)
        assert result.row_counts == {"patients": 4}
        assert result.total_rows == 4

    def test_file_not_modified(self, probe: IntegrityProbe, clinic_db: Path) -> None:
        before = clinic_db.read_bytes()
        probe.probe(clinic_db)
        assert clinic_db.read_bytes() == before
        assert not clinic_db.with_name("clinic.db-journal").exists()

    def test_foreign_key_violations_counted(self, probe: IntegrityProbe, clinic_db: Path) -> None:
        conn = sqlite3.connect(clinic_db)
        conn.execute("INSERT INTO appointments (patient_id, starts_at) VALUES (999, 'x')")
        conn.commit()
        conn.close()

        result = probe.probe(clinic_db)
        assert result.foreign_key_violations == 1
        assert result.row_counts["appointments"] == 2
