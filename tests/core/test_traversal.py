"""Tests for breadth-first traversal (CamelliaDB.recurse / db_traversal)."""

from __future__ import annotations

import pytest

from camellia.core import CamelliaDB
from camellia.db_base import Entry
from camellia.db_traversal import iter_entries
from camellia.exceptions import HookRejectedError, PathInvalidError, PathNotFoundError


def _collect(db: CamelliaDB, path: str, depth: int) -> list[tuple[str, str | None, int]]:
    seen: list[tuple[str, str | None, int]] = []

    def visit(entry: Entry, parent: Entry | None, level: int) -> None:
        seen.append((entry.path, parent.path if parent is not None else None, level))

    db.recurse(path, depth, visit)
    return seen


class TestOrder:
    def test_breadth_first_from_root(self, populated_db: CamelliaDB) -> None:
        seen = _collect(populated_db, "", -1)
        assert [path for path, _, _ in seen] == [
            "",
            "config",
            "sensors",
            "status",
            "config/name",
            "config/threads",
            "sensors/humidity",
            "sensors/inner",
            "sensors/temperature",
            "sensors/inner/deep",
        ]

    def test_parents_and_depths(self, populated_db: CamelliaDB) -> None:
        seen = {path: (parent, level) for path, parent, level in _collect(populated_db, "", -1)}
        assert seen[""] == (None, 0)
        assert seen["sensors"] == ("", 1)
        assert seen["sensors/inner/deep"] == ("sensors/inner", 3)

    def test_depth_never_decreases(self, populated_db: CamelliaDB) -> None:
        levels = [level for _, _, level in _collect(populated_db, "", -1)]
        assert levels == sorted(levels)

    def test_subtree_start(self, populated_db: CamelliaDB) -> None:
        seen = _collect(populated_db, "/sensors/", -1)
        assert seen[0] == ("sensors", None, 0)
        assert {path for path, _, _ in seen} == {
            "sensors",
            "sensors/humidity",
            "sensors/inner",
            "sensors/temperature",
            "sensors/inner/deep",
        }

    def test_value_start(self, populated_db: CamelliaDB) -> None:
        assert _collect(populated_db, "status", -1) == [("status", None, 0)]

    def test_returns_visit_count(self, populated_db: CamelliaDB) -> None:
        assert populated_db.recurse("", -1, lambda e, p, d: None) == populated_db.count()


class TestDepthLimit:
    def test_depth_zero(self, populated_db: CamelliaDB) -> None:
        assert _collect(populated_db, "", 0) == [("", None, 0)]

    def test_depth_one(self, populated_db: CamelliaDB) -> None:
        seen = _collect(populated_db, "", 1)
        assert [path for path, _, _ in seen] == ["", "config", "sensors", "status"]

    def test_depth_two_stops_before_deep(self, populated_db: CamelliaDB) -> None:
        seen = _collect(populated_db, "", 2)
        assert max(level for _, _, level in seen) == 2
        assert "sensors/inner/deep" not in {path for path, _, _ in seen}

    def test_children_loaded_on_visited_entries(self, populated_db: CamelliaDB) -> None:
        entries: dict[str, Entry] = {}
        populated_db.recurse("", 1, lambda e, p, d: entries.setdefault(e.path, e))
        assert sorted(entries[""].children) == ["config", "sensors", "status"]
        assert entries["sensors"].children == {}


class TestCallbacks:
    def test_missing_start(self, db: CamelliaDB) -> None:
        with pytest.raises(PathNotFoundError):
            db.recurse("nope", -1, lambda e, p, d: None)

    def test_callback_error_aborts(self, populated_db: CamelliaDB) -> None:
        visited: list[str] = []

        def visit(entry: Entry, parent: Entry | None, level: int) -> None:
            visited.append(entry.path)
            if entry.path == "sensors":
                raise ValueError("stop here")

        with pytest.raises(ValueError, match="stop here"):
            populated_db.recurse("", -1, visit)
        assert visited == ["", "config", "sensors"]

    def test_delete_during_walk(self, populated_db: CamelliaDB) -> None:
        visited: list[str] = []

        def prune(entry: Entry, parent: Entry | None, level: int) -> None:
            visited.append(entry.path)
            if entry.path == "sensors":
                populated_db.delete(entry.path)

        populated_db.recurse("", -1, prune)
        assert not populated_db.exists("sensors")
        # Direct children were queued before the container was deleted.
        assert "sensors/inner" in visited
        assert "sensors/inner/deep" not in visited
        assert populated_db.get("status") == "ok"

    def test_callback_error_rolls_back_nested_writes(self, populated_db: CamelliaDB) -> None:
        def visit(entry: Entry, parent: Entry | None, level: int) -> None:
            if entry.path == "config":
                populated_db.delete("status")
                populated_db.set("config/added", "1")
            if entry.path == "status":
                raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            populated_db.recurse("", 1, visit)
        assert populated_db.get("status") == "ok"
        assert not populated_db.exists("config/added")

    def test_caught_nested_failure_leaves_no_partial_writes(self, populated_db: CamelliaDB) -> None:
        def veto(path: str, value: str) -> None:
            raise ValueError("read-only")

        populated_db.set_pre_set_hook("sensors", veto)

        def visit(entry: Entry, parent: Entry | None, level: int) -> None:
            with pytest.raises(HookRejectedError):
                populated_db.force("sensors", "v")

        populated_db.recurse("", 0, visit)
        assert populated_db.exists("sensors/temperature")
        assert populated_db.get("sensors/inner/deep") == "x"
        assert not populated_db.is_value("sensors")

    def test_successful_nested_writes_commit(self, populated_db: CamelliaDB) -> None:
        def visit(entry: Entry, parent: Entry | None, level: int) -> None:
            try:
                populated_db.set("status/code", "1")
            except PathInvalidError:
                populated_db.set("extra", "1")

        populated_db.recurse("", 0, visit)
        assert populated_db.get("extra") == "1"
        assert populated_db.get("status") == "ok"


class TestIterEntries:
    def test_generator_matches_recurse(self, populated_db: CamelliaDB) -> None:
        with populated_db._transaction() as conn:
            paths = [entry.path for entry, _, _ in iter_entries(conn, "", -1)]
        assert paths == [path for path, _, _ in _collect(populated_db, "", -1)]
