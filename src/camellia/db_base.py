"""Shared types and helpers for the entry store modules."""

from __future__ import annotations

import sqlite3
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from camellia.types.core import EntryDict

# Row id of the root entry (path ""). Its parent column holds NO_PARENT.
ROOT_ID = 1
NO_PARENT = 0

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def _now_us() -> int:
    return time.time_ns() // 1000


def _us_to_datetime(us: int) -> datetime:
    return _EPOCH + timedelta(microseconds=us)


def _datetime_to_us(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return (dt - _EPOCH) // timedelta(microseconds=1)


@dataclass
class Entry:
    """One node of the hierarchy, detached from storage.

    A value entry (``is_value=True``) carries ``value`` and never has children.
    A container may hold any number of children keyed by their leaf name.
    """

    path: str
    name: str = ""
    last_update: datetime = field(default_factory=lambda: datetime.now(UTC))
    is_value: bool = False
    value: str = ""
    children: dict[str, Entry] = field(default_factory=dict)
    # Row id when read from storage, None for trees built in memory.
    id: int | None = None

    def to_dict(self) -> EntryDict:
        return {
            "path": self.path,
            "name": self.name,
            "last_update": self.last_update.isoformat(),
            "is_value": self.is_value,
            "value": self.value,
            "children": {name: child.to_dict() for name, child in self.children.items()},
        }

    def walk(self) -> list[Entry]:
        """Return this entry and all loaded descendants, breadth-first."""
        out: list[Entry] = []
        queue = deque([self])
        while queue:
            current = queue.popleft()
            out.append(current)
            queue.extend(current.children.values())
        return out


def _build_entry(row: sqlite3.Row, path: str) -> Entry:
    return Entry(
        path=path,
        name=row["name"],
        last_update=_us_to_datetime(row["last_update"]),
        is_value=bool(row["is_value"]),
        value=row["value"] if row["is_value"] else "",
        id=row["id"],
    )
