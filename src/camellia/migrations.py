"""Schema migration framework for camellia.

Migrations are version-keyed functions that transform the database schema
from one version to the next. Each migration receives a raw sqlite3.Connection
and must be idempotent (safe to re-run, using IF NOT EXISTS / IF EXISTS).

The migration runner:
  1. Reads the current schema version via PRAGMA user_version
  2. Applies each pending migration in order
  3. Bumps user_version after each successful migration
  4. Wraps each migration in a transaction (rollback on failure)

Migrations are never applied implicitly: ``CamelliaDB.initialize`` refuses a
stale database and the caller must run ``CamelliaDB.migrate`` (or
``camellia migrate``) first.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Protocol

from camellia.exceptions import CamelliaError, SchemaMismatchError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Migration function protocol
# ---------------------------------------------------------------------------


class MigrationFn(Protocol):
    """Protocol for migration functions."""

    def __call__(self, conn: sqlite3.Connection) -> None: ...


# ---------------------------------------------------------------------------
# Migration registry
#
# Keys are the version being migrated FROM (i.e., the current user_version).
# Values are functions that transform the schema to the next version.
# ---------------------------------------------------------------------------


def migrate_v1_to_v2(conn: sqlite3.Connection) -> None:
    """v1 → v2: Move the legacy ``camellia`` table to ``entries``.

    Changes:
      - explicit ``id INTEGER PRIMARY KEY`` (carries over the old rowid, so
        parent references stay valid and the root keeps id 1)
      - ``last_update_ms`` (milliseconds) becomes ``last_update`` (microseconds)
      - NOT NULL constraints on ``is_value``/``value``/``parent``
      - unique (parent, name) index replaces ``parent_index``/``name_index``
    """
    conn.execute("""\
        CREATE TABLE IF NOT EXISTS entries (
            id          INTEGER PRIMARY KEY,
            name        TEXT NOT NULL,
            parent      INTEGER NOT NULL DEFAULT 0,
            is_value    INTEGER NOT NULL DEFAULT 0,
            value       TEXT NOT NULL DEFAULT '',
            last_update INTEGER NOT NULL,
            CHECK (is_value IN (0, 1))
        )""")

    legacy = conn.execute("SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'camellia'").fetchone()
    if legacy is not None:
        # Legacy writers stamped ms, µs or ns into last_update_ms; infer the unit from magnitude.
        conn.execute(
            "INSERT OR IGNORE INTO entries (id, name, parent, is_value, value, last_update) "
            "SELECT rowid, name, coalesce(parent, 0), CASE WHEN is_value THEN 1 ELSE 0 END, "
            "coalesce(value, ''), "
            "CASE WHEN last_update_ms > 100000000000000000 THEN last_update_ms / 1000 "
            "WHEN last_update_ms > 100000000000000 THEN last_update_ms "
            "ELSE last_update_ms * 1000 END "
            "FROM camellia"
        )
        drop_index(conn, "name_index")
        drop_index(conn, "parent_index")
        conn.execute("DROP TABLE camellia")

    add_index(conn, "idx_entries_parent_name", "entries", ["parent", "name"], unique=True)
    add_index(conn, "idx_entries_name", "entries", ["name"])


MIGRATIONS: dict[int, MigrationFn] = {
    1: migrate_v1_to_v2,
}


# ---------------------------------------------------------------------------
# Migration runner
# ---------------------------------------------------------------------------


class MigrationError(CamelliaError):
    """Raised when a migration fails."""

    def __init__(self, from_version: int, to_version: int, cause: Exception) -> None:
        self.from_version = from_version
        self.to_version = to_version
        self.cause = cause
        super().__init__(f"Migration v{from_version} → v{to_version} failed: {cause}")


def get_schema_version(conn: sqlite3.Connection) -> int:
    result: int = conn.execute("PRAGMA user_version").fetchone()[0]
    return result


def apply_pending_migrations(conn: sqlite3.Connection, target_version: int) -> int:
    """Apply all pending migrations from current version up to target_version.

    Args:
        conn: Open SQLite connection, not inside a transaction.
        target_version: ``CURRENT_SCHEMA_VERSION`` from db_schema.py.

    Returns:
        Number of migrations applied (0 if already up to date).

    Raises:
        MigrationError: If any individual migration fails (DB rolled back to
            the last successful migration).
        SchemaMismatchError: If current version > target (downgrade not supported).
    """
    current = get_schema_version(conn)

    if current == target_version:
        return 0

    if current > target_version:
        raise SchemaMismatchError(current, target_version)

    applied = 0
    for version in range(current, target_version):
        migration = MIGRATIONS.get(version)
        if migration is None:
            msg = (
                f"No migration registered for v{version} → v{version + 1}. "
                f"Database is at v{version}, target is v{target_version}. "
                f"Register the migration in camellia.migrations.MIGRATIONS."
            )
            raise MigrationError(version, version + 1, KeyError(msg))

        logger.info("Applying migration v%d → v%d ...", version, version + 1)
        try:
            conn.execute("BEGIN IMMEDIATE")
            migration(conn)
            conn.execute(f"PRAGMA user_version = {version + 1}")
            conn.commit()
            applied += 1
            logger.info("Migration v%d → v%d complete.", version, version + 1)
        except Exception as exc:
            conn.rollback()
            raise MigrationError(version, version + 1, exc) from exc

    return applied


# ---------------------------------------------------------------------------
# SQLite migration helpers
# ---------------------------------------------------------------------------


def add_index(
    conn: sqlite3.Connection,
    index_name: str,
    table: str,
    columns: list[str],
    *,
    unique: bool = False,
) -> None:
    """Create an index (idempotent via IF NOT EXISTS)."""
    unique_kw = "UNIQUE " if unique else ""
    cols = ", ".join(columns)
    conn.execute(f"CREATE {unique_kw}INDEX IF NOT EXISTS {index_name} ON {table}({cols})")


def drop_index(conn: sqlite3.Connection, index_name: str) -> None:
    """Drop an index (idempotent via IF EXISTS)."""
    conn.execute(f"DROP INDEX IF EXISTS {index_name}")
