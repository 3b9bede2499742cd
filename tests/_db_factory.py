"""Shared CamelliaDB factories for test fixtures.

Importable by any conftest.py or test file in the test suite.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

from camellia.core import CamelliaDB
from camellia.db_schema import SCHEMA_V1_SQL
from camellia.hooks import HookRegistry

# 2023-11-14T22:13:20Z in milliseconds.
LEGACY_STAMP_MS = 1_700_000_000_000


def make_db(tmp_path: Path, *, name: str = "camellia.db", hooks: HookRegistry | None = None) -> CamelliaDB:
    """Factory for initialized CamelliaDB instances in tests."""
    d = CamelliaDB(tmp_path / name, hooks=hooks)
    d.initialize()
    return d


def make_v1_db(path: Path) -> Path:
    """Write a legacy (schema v1) database file holding a small tree.

    Tree::

        sensors/               (container)
        sensors/temperature    "-48.0"
        sensors/humidity       "31"
        status                 "ok"
    """
    conn = sqlite3.connect(str(path))
    conn.executescript(SCHEMA_V1_SQL)
    rows = [
        (1, "", 0, 0, ""),
        (2, "sensors", 1, 0, ""),
        (3, "temperature", 2, 1, "-48.0"),
        (4, "humidity", 2, 1, "31"),
        (5, "status", 1, 1, "ok"),
    ]
    conn.executemany(
        "INSERT INTO camellia (rowid, name, parent, is_value, value, last_update_ms) VALUES (?, ?, ?, ?, ?, ?)",
        [(*row, LEGACY_STAMP_MS) for row in rows],
    )
    conn.execute("PRAGMA user_version = 1")
    conn.commit()
    conn.close()
    return path
