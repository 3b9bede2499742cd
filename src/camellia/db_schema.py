"""Database schema definitions for the camellia store.

Contains the canonical SQL schema, the legacy V1 schema (for migration tests
and the v1 → v2 migration), and the current schema version constant.
"""

from __future__ import annotations

import sqlite3

CURRENT_SCHEMA_VERSION = 2

# The root row is inserted separately (see ``create_schema``) so its id is
# pinned to 1 regardless of how the table was created.
SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS entries (
    id          INTEGER PRIMARY KEY,
    name        TEXT NOT NULL,
    parent      INTEGER NOT NULL DEFAULT 0,
    is_value    INTEGER NOT NULL DEFAULT 0,
    value       TEXT NOT NULL DEFAULT '',
    last_update INTEGER NOT NULL,

    CHECK (is_value IN (0, 1))
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_entries_parent_name ON entries(parent, name);
CREATE INDEX IF NOT EXISTS idx_entries_name ON entries(name);
"""

# V1 schema: the legacy single-table layout keyed by the implicit rowid.
# last_update_ms holds milliseconds since the epoch.
SCHEMA_V1_SQL = """\
CREATE TABLE IF NOT EXISTS camellia (
    name            TEXT NOT NULL,
    last_update_ms  INTEGER NOT NULL,
    is_value        BIT DEFAULT 0,
    parent          INTEGER DEFAULT 0,
    value           TEXT DEFAULT ''
);

CREATE INDEX IF NOT EXISTS name_index ON camellia (name);
CREATE INDEX IF NOT EXISTS parent_index ON camellia (parent);
"""

_SCHEMA_STATEMENTS = [stmt.strip() for stmt in SCHEMA_SQL.split(";") if stmt.strip()]


def create_schema(conn: sqlite3.Connection, now_us: int) -> None:
    """Create the v2 table, its indexes and the root row.

    Uses ``execute()`` per statement rather than ``executescript()`` so the
    caller's transaction is not implicitly committed.
    """
    for stmt in _SCHEMA_STATEMENTS:
        conn.execute(stmt)
    conn.execute(
        "INSERT OR IGNORE INTO entries (id, name, parent, is_value, value, last_update) VALUES (1, '', 0, 0, '', ?)",
        (now_us,),
    )
