"""String conversion at the edge of the store.

Values are always stored as strings. These helpers stringify typed values on
the way in and parse them on the way out; nothing typed reaches SQLite.
"""

from __future__ import annotations

from typing import TypeVar

from camellia.exceptions import ConversionError

T = TypeVar("T", str, int, float, bool)

_TRUE = frozenset({"true", "1", "yes", "on"})
_FALSE = frozenset({"false", "0", "no", "off"})


def to_string(value: str | int | float | bool) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    msg = f"unsupported value type: {type(value).__name__}"
    raise TypeError(msg)


def parse(text: str, type_: type[T]) -> T:
    """Parse *text* as *type_* (``str``, ``int``, ``float`` or ``bool``).

    Booleans accept true/false, 1/0, yes/no and on/off, case-insensitively.
    Raises ConversionError when the text does not parse.
    """
    if type_ is str:
        return text  # type: ignore[return-value]
    if type_ is bool:
        lowered = text.strip().lower()
        if lowered in _TRUE:
            return True  # type: ignore[return-value]
        if lowered in _FALSE:
            return False  # type: ignore[return-value]
        raise ConversionError(text, bool)
    if type_ is int or type_ is float:
        try:
            return type_(text.strip())
        except ValueError as exc:
            raise ConversionError(text, type_) from exc
    msg = f"unsupported target type: {type_!r}"
    raise TypeError(msg)
