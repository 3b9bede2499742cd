"""Breadth-first traversal over the entry store.

Works on a caller-supplied connection inside a transaction, like
``camellia.db_entries``. The walk is iterative: a queue of
``(entry, parent, depth)`` triples replaces call-stack recursion.
"""

from __future__ import annotations

import sqlite3
from collections import deque
from collections.abc import Callable, Iterator

from camellia.db_base import Entry, _build_entry
from camellia.db_entries import _lookup_row, children
from camellia.paths import join_path, normalize_path

# callback(entry, parent, depth); parent is None for the starting entry.
VisitCallback = Callable[[Entry, Entry | None, int], object]


def iter_entries(conn: sqlite3.Connection, path: str, depth: int = -1) -> Iterator[tuple[Entry, Entry | None, int]]:
    """Yield ``(entry, parent, depth)`` breadth-first from *path*.

    *depth* limits how many levels below the start are visited; a negative
    depth visits the whole subtree. A node's children are fetched and queued
    before the node is yielded, so the consumer may delete the node without
    losing its children from the walk.

    Raises PathNotFoundError if *path* does not exist.
    """
    path = normalize_path(path)
    row = _lookup_row(conn, path)
    queue: deque[tuple[Entry, Entry | None, int, int]] = deque([(_build_entry(row, path), None, 0, row["id"])])
    while queue:
        entry, parent, level, row_id = queue.popleft()
        if not entry.is_value and (depth < 0 or level < depth):
            for child_row in children(conn, row_id):
                child = _build_entry(child_row, join_path([entry.path, child_row["name"]]))
                entry.children[child.name] = child
                queue.append((child, entry, level + 1, child_row["id"]))
        yield entry, parent, level


def recurse(conn: sqlite3.Connection, path: str, depth: int, callback: VisitCallback) -> int:
    """Invoke *callback* on every entry reached by ``iter_entries``.

    An exception from the callback aborts the walk and propagates unchanged.
    Returns the number of entries visited.
    """
    visited = 0
    for entry, parent, level in iter_entries(conn, path, depth):
        callback(entry, parent, level)
        visited += 1
    return visited
