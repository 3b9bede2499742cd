"""Database path discovery.

Resolution order for the database file:

1. an explicit path (``--db`` on the command line),
2. the ``CAMELLIA_DB_PATH`` environment variable,
3. the first line of the path file (``CAMELLIA_DB_PATH_FILE``, default
   ``<tempdir>/camellia.db.path``),
4. ``./camellia.db``.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)

DB_FILENAME = "camellia.db"
PATH_FILENAME = "camellia.db.path"

ENV_DB_PATH = "CAMELLIA_DB_PATH"
ENV_DB_PATH_FILE = "CAMELLIA_DB_PATH_FILE"
ENV_LOG_DIR = "CAMELLIA_LOG_DIR"


def default_path_file() -> Path:
    override = os.environ.get(ENV_DB_PATH_FILE)
    if override:
        return Path(override)
    return Path(tempfile.gettempdir()) / PATH_FILENAME


def _read_path_file(path_file: Path) -> str | None:
    try:
        text = path_file.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as exc:
        logger.warning("Failed to read %s, ignoring: %s", path_file, exc)
        return None
    lines = text.splitlines()
    first = lines[0].strip() if lines else ""
    return first or None


def resolve_db_path(explicit: str | Path | None = None) -> Path:
    if explicit:
        return Path(explicit)
    from_env = os.environ.get(ENV_DB_PATH)
    if from_env:
        return Path(from_env)
    from_file = _read_path_file(default_path_file())
    if from_file:
        return Path(from_file)
    return Path.cwd() / DB_FILENAME


def resolve_log_dir() -> Path | None:
    """Directory for the JSONL log, or None when file logging is off."""
    value = os.environ.get(ENV_LOG_DIR)
    return Path(value) if value else None
