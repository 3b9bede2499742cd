"""Typed shapes for camellia entries and their JSON forms."""

from __future__ import annotations

from camellia.types.core import EntryDict, ExtendedEntryJSON, ValuesJSON

__all__ = [
    "EntryDict",
    "ExtendedEntryJSON",
    "ValuesJSON",
]
