"""Fixtures for CLI interface tests."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest
from click.testing import CliRunner, Result

from camellia.cli import cli
from camellia.config import ENV_DB_PATH, ENV_DB_PATH_FILE, ENV_LOG_DIR

Invoke = Callable[..., Result]


@pytest.fixture(autouse=True)
def _isolate_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep CLI tests away from the user's database and log settings."""
    monkeypatch.delenv(ENV_DB_PATH, raising=False)
    monkeypatch.delenv(ENV_LOG_DIR, raising=False)
    monkeypatch.setenv(ENV_DB_PATH_FILE, str(tmp_path / "no-such.path"))


@pytest.fixture
def cli_db(tmp_path: Path) -> Path:
    return tmp_path / "cli.db"


@pytest.fixture
def invoke(cli_runner: CliRunner, cli_db: Path) -> Invoke:
    """Run ``camellia --db <cli_db> ARGS...`` and return the click Result."""

    def _invoke(*args: str, input: str | None = None) -> Result:
        return cli_runner.invoke(cli, ["--db", str(cli_db), *args], input=input)

    return _invoke
