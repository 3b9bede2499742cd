"""JSON forms of entry trees.

Two formats are supported:

- **values**: containers become objects and value entries become strings::

      {"sensors": {"temperature": "-48.0"}, "status": "ok"}

- **extended**: every node is an object carrying its last update time in
  milliseconds and either a ``value`` or a ``children`` object::

      {"last_update_ms": 1700000000000, "children": {
          "status": {"last_update_ms": 1700000000000, "value": "ok"}}}

These helpers are pure; ``CamelliaDB`` wires them to storage.
"""

from __future__ import annotations

import json
from typing import Any

from camellia.db_base import Entry, _datetime_to_us, _us_to_datetime
from camellia.exceptions import InvalidJSONError
from camellia.paths import join_path, split_path
from camellia.types.core import ExtendedEntryJSON, ValuesJSON

PROP_VALUE = "value"
PROP_CHILDREN = "children"
PROP_LAST_UPDATE = "last_update_ms"


def dumps(data: Any) -> str:
    """Serialize with 4-space indentation, keeping non-ASCII text as is."""
    return json.dumps(data, indent=4, ensure_ascii=False) + "\n"


def loads(text: str | bytes) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        msg = f"malformed JSON: {exc}"
        raise InvalidJSONError(msg) from exc


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


def entry_to_values(entry: Entry) -> ValuesJSON:
    if entry.is_value:
        return entry.value
    return {name: entry_to_values(child) for name, child in sorted(entry.children.items())}


def entry_to_extended(entry: Entry) -> ExtendedEntryJSON:
    node: ExtendedEntryJSON = {PROP_LAST_UPDATE: _datetime_to_us(entry.last_update) // 1000}
    if entry.is_value:
        node[PROP_VALUE] = entry.value
    else:
        node[PROP_CHILDREN] = {name: entry_to_extended(child) for name, child in sorted(entry.children.items())}
    return node


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


def _check_name(parent: str, name: str) -> str:
    if split_path(name) != [name]:
        msg = f"invalid entry name {name!r} under {parent or '/'!r}"
        raise InvalidJSONError(msg)
    return join_path([parent, name])


def entry_from_values(data: Any) -> Entry:
    """Build an in-memory tree (rooted at ``""``) from a values-format document.

    Empty objects become empty containers.
    """
    if not isinstance(data, dict):
        msg = "values JSON must be an object at the top level"
        raise InvalidJSONError(msg)
    root = Entry(path="")
    stack: list[tuple[Entry, dict[str, Any]]] = [(root, data)]
    while stack:
        entry, node = stack.pop()
        for name, child_data in node.items():
            path = _check_name(entry.path, name)
            if isinstance(child_data, str):
                entry.children[name] = Entry(path=path, name=name, is_value=True, value=child_data)
            elif isinstance(child_data, dict):
                child = Entry(path=path, name=name)
                entry.children[name] = child
                stack.append((child, child_data))
            else:
                msg = f"invalid JSON entry at {path!r}: expected a string or an object"
                raise InvalidJSONError(msg)
    return root


def _node_from_extended(path: str, data: Any) -> Entry:
    if not isinstance(data, dict):
        msg = f"invalid entry at {path or '/'!r}: expected an object"
        raise InvalidJSONError(msg)
    if PROP_VALUE in data and PROP_CHILDREN in data:
        msg = f"both value and children fields are defined at {path or '/'!r}"
        raise InvalidJSONError(msg)

    stamp = data.get(PROP_LAST_UPDATE)
    if stamp is not None and (isinstance(stamp, bool) or not isinstance(stamp, int)):
        msg = f"invalid {PROP_LAST_UPDATE} field at {path or '/'!r}"
        raise InvalidJSONError(msg)

    entry = Entry(path=path, name=split_path(path)[-1] if path else "")
    if stamp is not None:
        entry.last_update = _us_to_datetime(stamp * 1000)

    if PROP_VALUE in data:
        if not isinstance(data[PROP_VALUE], str):
            msg = f"invalid value field at {path or '/'!r}"
            raise InvalidJSONError(msg)
        entry.is_value = True
        entry.value = data[PROP_VALUE]
    elif not isinstance(data.get(PROP_CHILDREN), dict):
        msg = f"invalid children field at {path or '/'!r}"
        raise InvalidJSONError(msg)
    return entry


def entry_from_extended(data: Any) -> Entry:
    """Build an in-memory tree (rooted at ``""``) from an extended-format document."""
    root = _node_from_extended("", data)
    stack: list[tuple[Entry, Any]] = [(root, data)]
    while stack:
        entry, node = stack.pop()
        if entry.is_value:
            continue
        for name, child_data in node[PROP_CHILDREN].items():
            child = _node_from_extended(_check_name(entry.path, name), child_data)
            entry.children[name] = child
            stack.append((child, child_data))
    return root
