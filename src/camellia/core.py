"""Public store handle for camellia.

``CamelliaDB`` owns one SQLite connection and serializes every public call
through a re-entrant lock and a single ``BEGIN IMMEDIATE`` transaction. The
row-level work is delegated to ``camellia.db_entries`` and
``camellia.db_traversal``, which never manage transactions themselves.
"""

from __future__ import annotations

import contextlib
import logging
import sqlite3
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import TypeVar

from camellia import db_entries, db_traversal, json_bridge
from camellia.convert import parse, to_string
from camellia.db_base import Entry, _now_us
from camellia.db_schema import CURRENT_SCHEMA_VERSION, create_schema
from camellia.exceptions import InvalidJSONError, NoDatabaseError, SchemaMismatchError, StorageError, ValueEmptyError
from camellia.hooks import HookCallback, HookRegistry
from camellia.migrations import apply_pending_migrations, get_schema_version
from camellia.paths import normalize_path

logger = logging.getLogger(__name__)

T = TypeVar("T", str, int, float, bool)

_BUSY_TIMEOUT_MS = 5000


class CamelliaDB:
    """Hierarchical key-value store backed by one SQLite file.

    Usage::

        with CamelliaDB("store.db") as db:
            db.initialize()
            db.set("sensors/temperature", "-48.0")
            db.get("sensors/temperature")

    The handle may be shared between threads. Calls are serialized per
    handle; separate handles on the same file rely on SQLite locking.
    """

    def __init__(
        self,
        db_path: str | Path,
        *,
        hooks: HookRegistry | None = None,
        busy_timeout_ms: int = _BUSY_TIMEOUT_MS,
    ) -> None:
        self.db_path = Path(db_path)
        self._busy_timeout_ms = busy_timeout_ms
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._in_transaction = False
        self._savepoint_depth = 0
        self._ready = False
        self._hooks = hooks if hooks is not None else HookRegistry()

    def __enter__(self) -> CamelliaDB:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "open" if self._ready else "closed"
        return f"<CamelliaDB {str(self.db_path)!r} {state}>"

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                self._conn = sqlite3.connect(
                    str(self.db_path),
                    isolation_level=None,
                    check_same_thread=False,
                )
                self._conn.row_factory = sqlite3.Row
                self._conn.execute(f"PRAGMA busy_timeout={int(self._busy_timeout_ms)}")
                self._conn.execute("PRAGMA journal_mode=WAL")
            except sqlite3.Error as exc:
                self._conn = None
                msg = f"cannot open {self.db_path}: {exc}"
                raise StorageError(msg) from exc
        return self._conn

    @property
    def is_open(self) -> bool:
        """True once ``initialize`` or ``migrate`` succeeded and until ``close``."""
        return self._ready

    @property
    def supported_schema_version(self) -> int:
        return CURRENT_SCHEMA_VERSION

    # -- Lifecycle -----------------------------------------------------------

    def initialize(self) -> bool:
        """Open the store, creating the schema on an empty file.

        Returns True when the schema was created, False when an up-to-date
        schema was found. An older or newer schema raises
        SchemaMismatchError; older databases must go through ``migrate``.
        """
        with self._lock:
            version = self.get_schema_version()
            if version == 0:
                created = self._create_schema()
                self._ready = True
                return created
            if version != CURRENT_SCHEMA_VERSION:
                self._ready = False
                raise SchemaMismatchError(version, CURRENT_SCHEMA_VERSION)
            self._ready = True
            return False

    def migrate(self) -> bool:
        """Bring the file to the current schema. Idempotent.

        Creates the schema on an empty file and applies pending migrations
        on an older one. Returns True when anything changed.
        """
        with self._lock:
            version = self.get_schema_version()
            if version == 0:
                changed = self._create_schema()
            else:
                try:
                    changed = apply_pending_migrations(self.conn, CURRENT_SCHEMA_VERSION) > 0
                except sqlite3.Error as exc:
                    raise StorageError(str(exc)) from exc
            self._ready = True
            return changed

    def _create_schema(self) -> bool:
        conn = self.conn
        try:
            conn.execute("BEGIN IMMEDIATE")
            # Another handle may have created the schema since the first check.
            if get_schema_version(conn) != 0:
                conn.rollback()
                return False
            create_schema(conn, _now_us())
            conn.execute(f"PRAGMA user_version = {CURRENT_SCHEMA_VERSION}")
            conn.commit()
        except sqlite3.Error as exc:
            if conn.in_transaction:
                conn.rollback()
            msg = f"cannot create schema in {self.db_path}: {exc}"
            raise StorageError(msg) from exc
        logger.info("Created camellia schema v%d in %s", CURRENT_SCHEMA_VERSION, self.db_path)
        return True

    def get_schema_version(self) -> int:
        """Return the current schema version from PRAGMA user_version."""
        with self._lock:
            try:
                return get_schema_version(self.conn)
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc

    def close(self) -> None:
        with self._lock:
            self._ready = False
            self._hooks.shutdown()
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    # -- Transaction guard ---------------------------------------------------

    @contextlib.contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Hold the handle lock and one write transaction for the block.

        Commits on success and rolls back on any exception. Re-entering from
        the thread that already holds the transaction (a traversal callback
        or hook calling back into the handle) runs inside a savepoint of the
        outer transaction.
        """
        with self._lock:
            if not self._ready:
                msg = f"database {self.db_path} is not open; call initialize() or migrate() first"
                raise NoDatabaseError(msg)
            conn = self.conn
            if self._in_transaction:
                with self._savepoint(conn):
                    yield conn
                return

            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc
            self._in_transaction = True
            try:
                yield conn
            except sqlite3.Error as exc:
                conn.rollback()
                raise StorageError(str(exc)) from exc
            except BaseException:
                conn.rollback()
                raise
            else:
                try:
                    conn.commit()
                except sqlite3.Error as exc:
                    if conn.in_transaction:
                        conn.rollback()
                    raise StorageError(str(exc)) from exc
            finally:
                self._in_transaction = False

    @contextlib.contextmanager
    def _savepoint(self, conn: sqlite3.Connection) -> Iterator[None]:
        """Nested call inside a running transaction.

        A failing nested call is undone on its own, so a caller that catches
        the error keeps the outer transaction free of its partial writes.
        """
        self._savepoint_depth += 1
        name = f"camellia_sp{self._savepoint_depth}"
        try:
            conn.execute(f"SAVEPOINT {name}")
            try:
                yield
            except BaseException:
                conn.execute(f"ROLLBACK TO {name}")
                conn.execute(f"RELEASE {name}")
                raise
            conn.execute(f"RELEASE {name}")
        except sqlite3.Error as exc:
            raise StorageError(str(exc)) from exc
        finally:
            self._savepoint_depth -= 1

    # -- Reads ---------------------------------------------------------------

    def get(self, path: str) -> str:
        """Value stored at *path*.

        Raises PathNotFoundError or PathIsNotAValueError.
        """
        with self._transaction() as conn:
            return db_entries.get_value(conn, path)

    def get_entry(self, path: str = "", depth: int = -1) -> Entry:
        """Entry at *path* with children loaded *depth* levels deep (-1: all)."""
        with self._transaction() as conn:
            return db_entries.get_entry_depth(conn, path, depth)

    def exists(self, path: str) -> bool:
        with self._transaction() as conn:
            return db_entries.exists(conn, path)

    def is_value(self, path: str) -> bool:
        with self._transaction() as conn:
            return db_entries.path_is_value(conn, path)

    def count(self) -> int:
        """Number of stored entries, root included."""
        with self._transaction() as conn:
            return db_entries.count_entries(conn)

    def recurse(self, path: str, depth: int, callback: db_traversal.VisitCallback) -> int:
        """Breadth-first walk from *path*, calling ``callback(entry, parent, depth)``.

        The walk runs inside one transaction; the callback may call back into
        this handle (including ``delete``). An exception from the callback
        aborts the walk, rolls back, and propagates.
        """
        with self._transaction() as conn:
            return db_traversal.recurse(conn, path, depth, callback)

    # -- Writes --------------------------------------------------------------

    def set(self, path: str, value: str) -> None:
        """Store *value* at *path*, creating missing parent containers."""
        with self._transaction() as conn:
            db_entries.set_value(conn, path, value, hooks=self._hooks)

    def force(self, path: str, value: str) -> None:
        """Like ``set``, but replaces conflicting containers or values on the way."""
        with self._transaction() as conn:
            db_entries.set_value(conn, path, value, force=True, hooks=self._hooks)

    def delete(self, path: str) -> int:
        """Delete *path* and its whole subtree. Returns the number of rows removed."""
        with self._transaction() as conn:
            return db_entries.delete_entry(conn, path)

    def wipe(self) -> int:
        """Delete everything except the root. Returns the number of rows removed."""
        with self._transaction() as conn:
            removed = db_entries.wipe(conn)
        logger.info("Wiped %d entries from %s", removed, self.db_path)
        return removed

    def set_root_entry(
        self,
        entry: Entry,
        *,
        force: bool = False,
        only_merge: bool = False,
        skip_hooks: bool = False,
        keep_stamps: bool = False,
    ) -> int:
        """Apply an in-memory tree onto the stored tree, starting at the root."""
        with self._transaction() as conn:
            return db_entries.set_root_entry(
                conn,
                entry,
                force=force,
                hooks=self._hooks,
                skip_hooks=skip_hooks,
                only_merge=only_merge,
                keep_stamps=keep_stamps,
            )

    # -- JSON ----------------------------------------------------------------

    def values_to_json(self, path: str = "") -> str:
        """Subtree at *path* in the values format."""
        return json_bridge.dumps(json_bridge.entry_to_values(self.get_entry(path)))

    def entry_to_json(self, path: str = "") -> str:
        """Subtree at *path* in the extended format."""
        return json_bridge.dumps(json_bridge.entry_to_extended(self.get_entry(path)))

    def set_values_from_json(self, source: str | bytes, *, only_merge: bool = False) -> int:
        """Import a values-format document at the root.

        Conflicting entries are replaced, or skipped when *only_merge*.
        Hooks do not fire. Returns the number of rows written.
        """
        root = json_bridge.entry_from_values(json_bridge.loads(source))
        return self.set_root_entry(root, force=True, only_merge=only_merge, skip_hooks=True)

    def set_entries_from_json(self, source: str | bytes, *, only_merge: bool = False) -> int:
        """Import an extended-format document at the root.

        Like ``set_values_from_json``, but rows written are stamped with the
        document's ``last_update_ms`` values.
        """
        root = json_bridge.entry_from_extended(json_bridge.loads(source))
        if root.is_value:
            msg = "the top-level entry must have children, not a value"
            raise InvalidJSONError(msg)
        return self.set_root_entry(root, force=True, only_merge=only_merge, skip_hooks=True, keep_stamps=True)

    # -- Typed access --------------------------------------------------------

    def get_as(self, path: str, type_: type[T]) -> T:
        """Value at *path* parsed as *type_*. Raises ConversionError on bad text."""
        return parse(self.get(path), type_)

    def set_as(self, path: str, value: str | int | float | bool, *, force: bool = False) -> None:
        text = to_string(value)
        if force:
            self.force(path, text)
        else:
            self.set(path, text)

    def get_non_empty(self, path: str) -> str:
        value = self.get(path)
        if value == "":
            raise ValueEmptyError(normalize_path(path))
        return value

    # -- Hooks ---------------------------------------------------------------

    @property
    def hooks(self) -> HookRegistry:
        return self._hooks

    def set_pre_set_hook(self, path: str, callback: HookCallback) -> None:
        """Run *callback(path, value)* before a value is written at *path*.

        Raising from the callback rejects the write with HookRejectedError.
        """
        self._hooks.add_pre_set_hook(path, callback)

    def set_post_set_hook(self, path: str, callback: HookCallback, *, run_async: bool = False) -> None:
        self._hooks.add_post_set_hook(path, callback, run_async=run_async)

    def set_hooks_enabled(self, enabled: bool) -> None:
        self._hooks.enabled = enabled
