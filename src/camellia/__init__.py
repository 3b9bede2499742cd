"""Camellia: embedded hierarchical key-value store on SQLite."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("camellia")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from camellia.core import CamelliaDB
from camellia.db_base import Entry
from camellia.hooks import HookRegistry

__all__ = ["CamelliaDB", "Entry", "HookRegistry", "__version__"]
