"""Tests for the live Database handle."""

from __future__ import annotations

from pathlib import Path

import pytest

from clinic.data.database import Database, DatabaseClosed


@pytest.fixture
def database(tmp_path: Path):
    db = Database(tmp_path / "data" / "clinic.db")
    db.open()
    db.connection.execute("CREATE TABLE patients (id INTEGER PRIMARY KEY)")
    db.connection.commit()
    yield db
    db.close()


class TestDatabase:
    def test_open_creates_parent_directory(self, database: Database) -> None:
        assert database.path.is_file()
        assert database.is_open

    def test_connection_unavailable_while_closed(self, database: Database) -> None:
        database.close()
        assert not database.is_open
        with pytest.raises(DatabaseClosed):
            database.connection

    def test_reopen_gives_fresh_connection(self, database: Database) -> None:
        old = database.connection
        new = database.reopen()
        assert new is not old
        assert database.connection is new
        assert database.ping() == 1

    def test_checkpoint_when_closed_is_noop(self, database: Database) -> None:
        database.close()
        database.checkpoint()
