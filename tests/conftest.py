"""Shared fixtures: a wired AppContext over a real SQLite clinic database."""

from __future__ import annotations

import sqlite3
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from clinic.context import AppContext
from main import create_context

SCHEMA = """
CREATE TABLE patients (id INTEGER PRIMARY KEY, full_name TEXT NOT NULL);
CREATE TABLE appointments (
    id INTEGER PRIMARY KEY,
    patient_id INTEGER REFERENCES patients(id),
    starts_at TEXT
);
CREATE TABLE payments (
    id INTEGER PRIMARY KEY,
    patient_id INTEGER REFERENCES patients(id),
    amount REAL
);
CREATE TABLE treatments (id INTEGER PRIMARY KEY, patient_id INTEGER, name TEXT);
CREATE TABLE dental_treatment_images (id INTEGER PRIMARY KEY, patient_id INTEGER, image_path TEXT);
"""


def seed_clinic(conn: sqlite3.Connection, patients: int = 10) -> None:
    conn.executescript(SCHEMA)
    add_patient_rows(conn, patients)
    conn.execute("INSERT INTO appointments (patient_id, starts_at) VALUES (1, '2026-01-05T09:00')")
    conn.execute("INSERT INTO payments (patient_id, amount) VALUES (1, 150.0)")
    conn.execute("INSERT INTO treatments (patient_id, name) VALUES (1, 'filling')")
    conn.commit()


def add_patient_rows(conn: sqlite3.Connection, n: int) -> None:
    start = conn.execute("SELECT COUNT(*) FROM patients").fetchone()[0]
    conn.executemany(
        "INSERT INTO patients (full_name) VALUES (?)",
        [(f"Patient {start + i + 1}",) for i in range(n)],
    )
    conn.commit()


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "appdata"


@pytest.fixture
def ctx(data_dir: Path) -> Iterator[AppContext]:
    """Context with a live database holding 10 patients."""
    context = create_context(data_dir, log_to_file=False)
    seed_clinic(context.database.connection)
    yield context
    context.scheduler.stop()
    context.database.close()


@pytest.fixture
def assets(ctx: AppContext) -> Path:
    """Populate the live image directory."""
    root = ctx.config.assets_dir
    (root / "1" / "11" / "xray").mkdir(parents=True)
    (root / "1" / "11" / "xray" / "before.png").write_bytes(b"\x89PNG before")
    (root / "2").mkdir()
    (root / "2" / "after.jpg").write_bytes(b"\xff\xd8 after")
    return root


@pytest.fixture
def add_patients(ctx: AppContext) -> Callable[[int], None]:
    return lambda n: add_patient_rows(ctx.database.connection, n)


@pytest.fixture
def patient_count(ctx: AppContext) -> Callable[[], int]:
    return lambda: ctx.database.connection.execute("SELECT COUNT(*) FROM patients").fetchone()[0]
