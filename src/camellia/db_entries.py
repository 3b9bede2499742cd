"""Entry store: maps the virtual path tree onto rows of the ``entries`` table.

Every function here takes an open ``sqlite3.Connection`` (with
``row_factory = sqlite3.Row``) that the caller has already placed inside a
transaction. Nothing in this module begins, commits or rolls back: on error
the caller's transaction is expected to be rolled back as a whole, which is
what keeps partially materialized paths from ever becoming visible.

Rows are identified by a surrogate ``id``; a path is resolved by walking its
segments from the root through the unique ``(parent, name)`` index.
"""

from __future__ import annotations

import logging
import sqlite3
from collections import deque

from camellia.db_base import NO_PARENT, ROOT_ID, Entry, _build_entry, _datetime_to_us, _now_us
from camellia.exceptions import HookRejectedError, PathInvalidError, PathIsNotAValueError, PathNotFoundError
from camellia.hooks import HookDispatch
from camellia.paths import join_path, normalize_path, split_path

logger = logging.getLogger(__name__)

_COLUMNS = "id, name, parent, is_value, value, last_update"


# ---------------------------------------------------------------------------
# Row access
# ---------------------------------------------------------------------------


def _root_row(conn: sqlite3.Connection) -> sqlite3.Row:
    row: sqlite3.Row | None = conn.execute(f"SELECT {_COLUMNS} FROM entries WHERE id = ?", (ROOT_ID,)).fetchone()
    if row is None:
        raise PathNotFoundError("")
    return row


def _find_child(conn: sqlite3.Connection, parent_id: int, name: str) -> sqlite3.Row | None:
    row: sqlite3.Row | None = conn.execute(
        f"SELECT {_COLUMNS} FROM entries WHERE parent = ? AND name = ?",
        (parent_id, name),
    ).fetchone()
    return row


def _lookup_row(conn: sqlite3.Connection, path: str) -> sqlite3.Row:
    segments = split_path(path)
    row = _root_row(conn)
    for segment in segments:
        child = _find_child(conn, row["id"], segment)
        if child is None:
            raise PathNotFoundError(join_path(segments))
        row = child
    return row


def children(conn: sqlite3.Connection, row_id: int) -> list[sqlite3.Row]:
    """Child rows of *row_id*, ordered by name."""
    return conn.execute(
        f"SELECT {_COLUMNS} FROM entries WHERE parent = ? ORDER BY name",
        (row_id,),
    ).fetchall()


def _insert(
    conn: sqlite3.Connection,
    parent_id: int,
    name: str,
    *,
    is_value: bool,
    value: str = "",
    last_update: int,
) -> int:
    cursor = conn.execute(
        "INSERT INTO entries (name, parent, is_value, value, last_update) VALUES (?, ?, ?, ?, ?)",
        (name, parent_id, 1 if is_value else 0, value if is_value else "", last_update),
    )
    rowid = cursor.lastrowid
    if rowid is None:  # pragma: no cover
        msg = "INSERT did not produce a lastrowid"
        raise RuntimeError(msg)
    return rowid


def _update_value(conn: sqlite3.Connection, row: sqlite3.Row, value: str, now: int) -> None:
    # last_update must strictly increase even when two writes share a clock tick.
    stamp = max(now, row["last_update"] + 1)
    conn.execute("UPDATE entries SET value = ?, last_update = ? WHERE id = ?", (value, stamp, row["id"]))


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


def lookup(conn: sqlite3.Connection, path: str) -> tuple[int, bool]:
    """Resolve *path* to ``(row id, is_value)``.

    Raises PathNotFoundError if any segment along the path is missing.
    """
    row = _lookup_row(conn, path)
    return row["id"], bool(row["is_value"])


def get_value(conn: sqlite3.Connection, path: str) -> str:
    path = normalize_path(path)
    row = _lookup_row(conn, path)
    if not row["is_value"]:
        raise PathIsNotAValueError(path)
    value: str = row["value"]
    return value


def get_entry(conn: sqlite3.Connection, path: str) -> Entry:
    """The entry at *path* with its metadata but without children."""
    path = normalize_path(path)
    return _build_entry(_lookup_row(conn, path), path)


def get_entry_depth(conn: sqlite3.Connection, path: str, depth: int = -1) -> Entry:
    """Build the in-memory tree rooted at *path*.

    Children are expanded breadth-first, one level per step: ``depth == 0``
    returns the entry alone, ``depth == n`` expands n levels below it and a
    negative depth expands the whole subtree.
    """
    path = normalize_path(path)
    row = _lookup_row(conn, path)
    root = _build_entry(row, path)
    level: list[tuple[Entry, int]] = [] if root.is_value else [(root, row["id"])]
    expanded = 0
    while level and (depth < 0 or expanded < depth):
        next_level: list[tuple[Entry, int]] = []
        for entry, row_id in level:
            for child_row in children(conn, row_id):
                child = _build_entry(child_row, join_path([entry.path, child_row["name"]]))
                entry.children[child.name] = child
                if not child.is_value:
                    next_level.append((child, child_row["id"]))
        level = next_level
        expanded += 1
    return root


def exists(conn: sqlite3.Connection, path: str) -> bool:
    try:
        _lookup_row(conn, path)
    except PathNotFoundError:
        return False
    return True


def path_is_value(conn: sqlite3.Connection, path: str) -> bool:
    """True only when *path* exists and holds a value."""
    try:
        _, is_value = lookup(conn, path)
    except PathNotFoundError:
        return False
    return is_value


def count_entries(conn: sqlite3.Connection) -> int:
    """Total number of rows, root included."""
    result: int = conn.execute("SELECT COUNT(*) FROM entries").fetchone()[0]
    return result


# ---------------------------------------------------------------------------
# Hook helpers
# ---------------------------------------------------------------------------


def _pre_set(hooks: HookDispatch | None, path: str, value: str) -> None:
    if hooks is None:
        return
    try:
        hooks.notify_pre_set(path, value)
    except Exception as exc:
        raise HookRejectedError(path, exc) from exc


def _post_set(hooks: HookDispatch | None, path: str, value: str) -> None:
    if hooks is None:
        return
    try:
        hooks.notify_post_set(path, value)
    except Exception:
        # The write already happened; post-set outcomes never undo it.
        logger.warning("Post-set hook for %r failed", path, exc_info=True)


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


def _ensure_containers(conn: sqlite3.Connection, segments: list[str], now: int, *, force: bool) -> int:
    """Materialize every container along *segments*; return the last row id."""
    parent_id = ROOT_ID
    for depth, segment in enumerate(segments):
        row = _find_child(conn, parent_id, segment)
        if row is None:
            parent_id = _insert(conn, parent_id, segment, is_value=False, last_update=now)
        elif row["is_value"]:
            conflict = join_path(segments[: depth + 1])
            if not force:
                raise PathInvalidError(conflict, "a value exists where a container is required")
            logger.info("Replacing value %r with a container", conflict)
            delete_row(conn, row["id"])
            parent_id = _insert(conn, parent_id, segment, is_value=False, last_update=now)
        else:
            parent_id = row["id"]
    return parent_id


def set_value(
    conn: sqlite3.Connection,
    path: str,
    value: str,
    *,
    force: bool = False,
    hooks: HookDispatch | None = None,
    skip_hooks: bool = False,
) -> None:
    """Write *value* at *path*, creating missing ancestors.

    An existing value is updated in place. An existing container raises
    PathIsNotAValueError unless *force*, in which case its whole subtree is
    replaced by the value. A value sitting where an ancestor container is
    needed raises PathInvalidError unless *force*.
    """
    if not isinstance(value, str):
        msg = f"value must be a str, got {type(value).__name__}"
        raise TypeError(msg)
    segments = split_path(path)
    if not segments:
        raise PathInvalidError("", "cannot set a value at the root")
    path = join_path(segments)
    dispatch = None if skip_hooks else hooks
    now = _now_us()

    parent_id = _ensure_containers(conn, segments[:-1], now, force=force)
    row = _find_child(conn, parent_id, segments[-1])
    if row is not None and not row["is_value"]:
        if not force:
            raise PathIsNotAValueError(path)
        logger.info("Replacing container %r and its subtree with a value", path)
        delete_row(conn, row["id"])
        row = None

    _pre_set(dispatch, path, value)
    if row is None:
        _insert(conn, parent_id, segments[-1], is_value=True, value=value, last_update=now)
    else:
        _update_value(conn, row, value, now)
    _post_set(dispatch, path, value)


def set_root_entry(
    conn: sqlite3.Connection,
    entry: Entry,
    *,
    force: bool = False,
    hooks: HookDispatch | None = None,
    skip_hooks: bool = False,
    only_merge: bool = False,
    keep_stamps: bool = False,
) -> int:
    """Apply an in-memory tree onto storage, starting at the root.

    *entry* stands for the root, so it must be a container; its children are
    matched by key against the stored root's children, recursively.

    - Missing rows are inserted.
    - A value/container mismatch is skipped together with its whole subtree
      under *only_merge*; otherwise it needs *force* (delete and recreate) or
      raises PathInvalidError.
    - Matching values are overwritten unless *only_merge*.

    Rows are stamped with the current time, or with each node's own
    ``last_update`` under *keep_stamps*. An overwritten value still gets a
    stamp later than the one it replaces.

    Returns the number of rows inserted or updated.
    """
    if entry.is_value:
        raise PathInvalidError("", "the root entry must be a container")
    dispatch = None if skip_hooks else hooks
    now = _now_us()
    written = 0

    stack: list[tuple[Entry, int, str, str]] = []

    def push_children(node: Entry, row_id: int, path: str) -> None:
        for name, child in reversed(list(node.children.items())):
            if split_path(name) != [name]:
                raise PathInvalidError(join_path([path, name]) or name, "invalid entry name")
            stack.append((child, row_id, join_path([path, name]), name))

    push_children(entry, ROOT_ID, "")
    while stack:
        node, parent_id, path, name = stack.pop()
        row = _find_child(conn, parent_id, name)

        if row is not None and bool(row["is_value"]) != node.is_value:
            if only_merge:
                logger.debug("Merge skipped %r: stored entry type differs", path)
                continue
            if not force:
                raise PathInvalidError(path, "entry type conflicts with the stored entry")
            logger.info("Replacing %r: stored entry type differs", path)
            delete_row(conn, row["id"])
            row = None

        stamp = _datetime_to_us(node.last_update) if keep_stamps else now
        if row is None:
            if node.is_value:
                _pre_set(dispatch, path, node.value)
                row_id = _insert(conn, parent_id, name, is_value=True, value=node.value, last_update=stamp)
                _post_set(dispatch, path, node.value)
            else:
                row_id = _insert(conn, parent_id, name, is_value=False, last_update=stamp)
            written += 1
        else:
            row_id = row["id"]
            if node.is_value and not only_merge:
                _pre_set(dispatch, path, node.value)
                _update_value(conn, row, node.value, stamp)
                _post_set(dispatch, path, node.value)
                written += 1

        if not node.is_value:
            push_children(node, row_id, path)

    return written


def delete_row(conn: sqlite3.Connection, row_id: int) -> int:
    """Delete row *row_id* and its whole subtree. Returns rows removed."""
    if row_id in (NO_PARENT, ROOT_ID):
        raise PathInvalidError("", "cannot delete the root entry")
    collected: list[int] = []
    queue: deque[int] = deque([row_id])
    while queue:
        current = queue.popleft()
        collected.append(current)
        queue.extend(r[0] for r in conn.execute("SELECT id FROM entries WHERE parent = ?", (current,)))
    conn.executemany("DELETE FROM entries WHERE id = ?", [(i,) for i in collected])
    return len(collected)


def delete_entry(conn: sqlite3.Connection, path: str) -> int:
    """Delete the entry at *path* and everything below it.

    Deleting the root is never allowed. Returns rows removed.
    """
    path = normalize_path(path)
    if not path:
        raise PathInvalidError("", "cannot delete the root entry")
    row_id, _ = lookup(conn, path)
    removed = delete_row(conn, row_id)
    logger.debug("Deleted %r (%d rows)", path, removed)
    return removed


def wipe(conn: sqlite3.Connection) -> int:
    """Delete every entry except the root. Returns rows removed."""
    removed = 0
    for row in children(conn, ROOT_ID):
        removed += delete_row(conn, row["id"])
    return removed

