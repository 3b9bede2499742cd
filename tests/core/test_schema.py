"""Tests for schema creation, version checks and handle lifecycle."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from camellia.core import CamelliaDB
from camellia.db_base import NO_PARENT, ROOT_ID
from camellia.db_schema import CURRENT_SCHEMA_VERSION
from camellia.exceptions import NoDatabaseError, SchemaMismatchError, StorageError


def _index_names(conn: sqlite3.Connection) -> set[str]:
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type='index' AND name NOT LIKE 'sqlite_%'").fetchall()
    return {row[0] for row in rows}


def _set_user_version(path: Path, version: int) -> None:
    conn = sqlite3.connect(str(path))
    conn.execute(f"PRAGMA user_version = {version}")
    conn.close()


class TestInitialize:
    def test_fresh_file_creates_schema(self, tmp_path: Path) -> None:
        db = CamelliaDB(tmp_path / "new.db")
        assert db.initialize() is True
        assert db.get_schema_version() == CURRENT_SCHEMA_VERSION
        assert db.is_open
        db.close()

    def test_second_open_is_not_a_creation(self, tmp_path: Path) -> None:
        with CamelliaDB(tmp_path / "x.db") as first:
            assert first.initialize() is True
        with CamelliaDB(tmp_path / "x.db") as second:
            assert second.initialize() is False

    def test_initialize_twice_on_same_handle(self, db: CamelliaDB) -> None:
        assert db.initialize() is False

    def test_root_row(self, db: CamelliaDB) -> None:
        row = db.conn.execute("SELECT id, name, parent, is_value FROM entries WHERE parent = ?", (NO_PARENT,)).fetchall()
        assert len(row) == 1
        assert row[0]["id"] == ROOT_ID
        assert row[0]["name"] == ""
        assert row[0]["is_value"] == 0

    def test_indexes_created(self, db: CamelliaDB) -> None:
        assert {"idx_entries_parent_name", "idx_entries_name"} <= _index_names(db.conn)

    def test_wal_mode(self, db: CamelliaDB) -> None:
        assert db.conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"

    def test_duplicate_path_rejected_by_index(self, db: CamelliaDB) -> None:
        db.set("a", "1")
        with pytest.raises(sqlite3.IntegrityError):
            db.conn.execute(
                "INSERT INTO entries (name, parent, is_value, value, last_update) VALUES ('a', ?, 1, '2', 0)",
                (ROOT_ID,),
            )

    def test_supported_version(self, db: CamelliaDB) -> None:
        assert db.supported_schema_version == CURRENT_SCHEMA_VERSION

    def test_stale_database_refused(self, legacy_db_path: Path) -> None:
        db = CamelliaDB(legacy_db_path)
        with pytest.raises(SchemaMismatchError) as excinfo:
            db.initialize()
        assert excinfo.value.found == 1
        assert excinfo.value.expected == CURRENT_SCHEMA_VERSION
        assert "migrate" in str(excinfo.value)
        assert not db.is_open
        with pytest.raises(NoDatabaseError):
            db.get("status")
        db.close()

    def test_newer_database_refused(self, tmp_path: Path) -> None:
        path = tmp_path / "future.db"
        _set_user_version(path, CURRENT_SCHEMA_VERSION + 1)
        db = CamelliaDB(path)
        with pytest.raises(SchemaMismatchError, match="newer"):
            db.initialize()
        with pytest.raises(SchemaMismatchError):
            db.migrate()
        db.close()

    def test_not_a_database(self, tmp_path: Path) -> None:
        path = tmp_path / "garbage.db"
        path.write_bytes(b"this is definitely not an sqlite file" * 100)
        db = CamelliaDB(path)
        with pytest.raises(StorageError):
            db.initialize()
        db.close()


class TestMigrate:
    def test_migrate_fresh_file(self, tmp_path: Path) -> None:
        with CamelliaDB(tmp_path / "m.db") as db:
            assert db.migrate() is True
            assert db.is_open
            db.set("a", "1")

    def test_migrate_is_idempotent(self, db: CamelliaDB) -> None:
        assert db.migrate() is False
        assert db.migrate() is False
        assert db.get_schema_version() == CURRENT_SCHEMA_VERSION

    def test_migrate_stale_then_use(self, legacy_db_path: Path) -> None:
        db = CamelliaDB(legacy_db_path)
        with pytest.raises(SchemaMismatchError):
            db.initialize()
        assert db.migrate() is True
        assert db.get("sensors/temperature") == "-48.0"
        assert db.get("status") == "ok"
        db.set("sensors/pressure", "1013")
        assert sorted(db.get_entry("sensors").children) == ["humidity", "pressure", "temperature"]
        db.close()

        with CamelliaDB(legacy_db_path) as reopened:
            assert reopened.initialize() is False
            assert reopened.migrate() is False


class TestLifecycle:
    def test_operations_before_initialize(self, tmp_path: Path) -> None:
        db = CamelliaDB(tmp_path / "u.db")
        with pytest.raises(NoDatabaseError):
            db.set("a", "1")
        with pytest.raises(NoDatabaseError):
            db.exists("a")
        db.close()

    def test_operations_after_close(self, db: CamelliaDB) -> None:
        db.set("a", "1")
        db.close()
        assert not db.is_open
        with pytest.raises(NoDatabaseError):
            db.get("a")

    def test_reopen_after_close(self, db: CamelliaDB) -> None:
        db.set("a", "1")
        db.close()
        assert db.initialize() is False
        assert db.get("a") == "1"

    def test_data_persists_across_handles(self, tmp_path: Path) -> None:
        with CamelliaDB(tmp_path / "p.db") as db:
            db.initialize()
            db.set("sensors/temperature", "-48.0")
        with CamelliaDB(tmp_path / "p.db") as db:
            db.initialize()
            assert db.get("sensors/temperature") == "-48.0"

    def test_close_is_idempotent(self, db: CamelliaDB) -> None:
        db.close()
        db.close()

    def test_repr(self, db: CamelliaDB) -> None:
        assert "open" in repr(db)
