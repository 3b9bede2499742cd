"""Shared pytest fixtures for camellia tests."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from camellia.core import CamelliaDB
from tests._db_factory import make_db, make_v1_db


@pytest.fixture
def db(tmp_path: Path) -> Generator[CamelliaDB, None, None]:
    """Fresh CamelliaDB for each test."""
    d = make_db(tmp_path)
    yield d
    d.close()


@pytest.fixture
def populated_db(db: CamelliaDB) -> CamelliaDB:
    """CamelliaDB pre-populated with a representative tree.

    Creates:
    - config/name = "camellia", config/threads = "4"
    - sensors/humidity = "31", sensors/temperature = "-48.0"
    - sensors/inner/deep = "x"
    - status = "ok"
    """
    db.set("config/name", "camellia")
    db.set("config/threads", "4")
    db.set("sensors/temperature", "-48.0")
    db.set("sensors/humidity", "31")
    db.set("sensors/inner/deep", "x")
    db.set("status", "ok")
    return db


@pytest.fixture
def legacy_db_path(tmp_path: Path) -> Path:
    """Path to a schema v1 database file (see ``make_v1_db``)."""
    return make_v1_db(tmp_path / "legacy.db")


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()
