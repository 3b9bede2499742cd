"""Shared CLI helpers: opening the store and mapping errors to exit codes."""

from __future__ import annotations

import contextlib
import logging
import sys
import time
from collections.abc import Iterator
from typing import Any

import click

from camellia.config import resolve_db_path
from camellia.core import CamelliaDB
from camellia.exceptions import (
    CamelliaError,
    ConversionError,
    HookRejectedError,
    InvalidJSONError,
    PathInvalidError,
    PathIsNotAValueError,
    PathNotFoundError,
    SchemaMismatchError,
    ValueEmptyError,
)

logger = logging.getLogger(__name__)

EXIT_ERROR = 1
EXIT_PATH_INVALID = 3
EXIT_NOT_FOUND = 4
EXIT_NOT_A_VALUE = 5
EXIT_SCHEMA_MISMATCH = 6
EXIT_HOOK_REJECTED = 7
EXIT_BAD_INPUT = 8

_EXIT_CODES: list[tuple[type[CamelliaError], int]] = [
    (PathInvalidError, EXIT_PATH_INVALID),
    (PathNotFoundError, EXIT_NOT_FOUND),
    (PathIsNotAValueError, EXIT_NOT_A_VALUE),
    (ValueEmptyError, EXIT_NOT_A_VALUE),
    (SchemaMismatchError, EXIT_SCHEMA_MISMATCH),
    (HookRejectedError, EXIT_HOOK_REJECTED),
    (InvalidJSONError, EXIT_BAD_INPUT),
    (ConversionError, EXIT_BAD_INPUT),
]


def exit_code_for(exc: CamelliaError) -> int:
    for kind, code in _EXIT_CODES:
        if isinstance(exc, kind):
            return code
    return EXIT_ERROR


@contextlib.contextmanager
def handle_errors(path: str | None = None) -> Iterator[None]:
    """Turn store errors into a one-line message on stderr and an exit code.

    Each command run is logged as ``command_call`` (or ``command_error``)
    with the command name, the *path* it addressed and its duration.
    """
    ctx = click.get_current_context(silent=True)
    extra: dict[str, Any] = {"command": ctx.info_name if ctx is not None else None}
    if path is not None:
        extra["path"] = path
    t0 = time.monotonic()
    try:
        yield
    except CamelliaError as exc:
        extra["duration_ms"] = round((time.monotonic() - t0) * 1000, 1)
        logger.error("command_error", extra=extra, exc_info=True)
        click.echo(f"Error: {exc}", err=True)
        sys.exit(exit_code_for(exc))
    else:
        extra["duration_ms"] = round((time.monotonic() - t0) * 1000, 1)
        logger.info("command_call", extra=extra)


def get_db(ctx: click.Context, *, initialize: bool = True) -> CamelliaDB:
    """Return a store handle for the path chosen on the command line.

    With *initialize* the schema is created on an empty file; a stale file
    fails with SchemaMismatchError, to be handled by ``handle_errors``.
    """
    db = CamelliaDB(resolve_db_path(ctx.obj.get("db_path")))
    if initialize:
        try:
            db.initialize()
        except CamelliaError:
            db.close()
            raise
    return db
