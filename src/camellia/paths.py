"""Path helpers for the slash-delimited entry namespace.

Paths are canonicalized by splitting on ``/`` and dropping empty segments, so
leading, trailing and repeated separators are insignificant. The root is the
empty path ``""``.
"""

from __future__ import annotations

from collections.abc import Iterable

SEPARATOR = "/"


def split_path(path: str) -> list[str]:
    """Return the non-empty segments of *path*."""
    return [segment for segment in path.split(SEPARATOR) if segment]


def join_path(segments: Iterable[str]) -> str:
    """Join *segments* with single separators, ignoring empty ones."""
    parts = (segment.strip(SEPARATOR) for segment in segments)
    return SEPARATOR.join(part for part in parts if part)


def normalize_path(path: str) -> str:
    """Canonical form of *path*. Idempotent."""
    return join_path(split_path(path))


def parent_path(path: str) -> str:
    """Normalized parent of *path*; the root is its own parent."""
    return join_path(split_path(path)[:-1])


def leaf_name(path: str) -> str:
    segments = split_path(path)
    return segments[-1] if segments else ""


def is_root(path: str) -> bool:
    return not split_path(path)
