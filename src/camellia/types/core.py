"""Foundational TypedDicts for Entry.to_dict() and the JSON bridge."""

from __future__ import annotations

from typing import NotRequired, TypedDict, Union


class EntryDict(TypedDict):
    path: str
    name: str
    last_update: str
    is_value: bool
    value: str
    children: dict[str, EntryDict]


class ExtendedEntryJSON(TypedDict):
    """Shape of one node in the extended JSON format."""

    last_update_ms: NotRequired[int]
    value: NotRequired[str]
    children: NotRequired[dict[str, ExtendedEntryJSON]]


# Plain "values" format: containers are objects, values are strings.
ValuesJSON = Union[str, dict[str, "ValuesJSON"]]

# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
# NEVER import from core.py, db_base.py, or any db_* module to avoid circular imports.
