"""Exceptions raised by the camellia store."""

from __future__ import annotations


class CamelliaError(Exception):
    """Base exception for all store errors."""


class PathInvalidError(CamelliaError, ValueError):
    """Structurally illegal operation on a path (root mutation, type conflict)."""

    def __init__(self, path: str, reason: str = "invalid path") -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{reason}: {path!r}")


class PathNotFoundError(CamelliaError, KeyError):
    """No entry exists at the path."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"path not found: {path!r}")

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0])


class PathIsNotAValueError(CamelliaError, ValueError):
    """A value-only operation was invoked on a container entry."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"path is not a value: {path!r}")


class SchemaMismatchError(CamelliaError):
    """The database schema version differs from the supported one."""

    def __init__(self, found: int, expected: int) -> None:
        self.found = found
        self.expected = expected
        if found > expected:
            hint = "it was written by a newer release"
        else:
            hint = "run 'camellia migrate' to upgrade it"
        super().__init__(f"database schema is v{found}, expected v{expected}; {hint}")


class StorageError(CamelliaError):
    """The underlying SQLite engine failed."""


class HookRejectedError(CamelliaError):
    """A pre-set hook vetoed a write."""

    def __init__(self, path: str, cause: BaseException) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"pre-set hook rejected {path!r}: {cause}")


class NoDatabaseError(CamelliaError):
    """The store handle is closed or was never initialized."""


class ValueEmptyError(CamelliaError, ValueError):
    """A non-empty value was required but the stored value is empty."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"value is empty: {path!r}")


class ConversionError(CamelliaError, ValueError):
    """A stored string could not be parsed into the requested type."""

    def __init__(self, text: str, target: type) -> None:
        self.text = text
        self.target = target
        super().__init__(f"cannot convert {text!r} to {target.__name__}")


class InvalidJSONError(CamelliaError, ValueError):
    """A JSON document does not describe a valid entry tree."""
