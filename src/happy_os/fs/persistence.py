"""Persistence — where each user's OS lives between commands.

The simulator only ever needs a tiny key-value contract:

    - ``load(table, user_id, default)`` — fetch a whole value (or *default*).
    - ``save(table, user_id, value)`` — replace a whole value.

Three logical tables hold everything: command histories, filesystem
snapshots and network configurations.  Values are always JSON-compatible
(lists, dicts, strings, numbers, booleans), so any blob store works.

Two stores ship with the package:

    - ``MemoryStore`` — a dict of dicts, for tests and embedding.
    - ``JsonFileStore`` — one JSON file per (table, user) under a data
      directory, written whole on every save (like ``sync``).

Neither store catches I/O errors.  A failing store is fatal to the
command in progress and surfaces to the host unchanged.
"""

import copy
import json
from enum import StrEnum
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import quote


class Table(StrEnum):
    """The logical tables a store must provide."""

    HISTORIES = "user_histories"
    FILESYSTEMS = "user_filesystems"
    NETWORK_CONFIGS = "user_network_configs"


class Store(Protocol):
    """Whole-value key-value persistence keyed by (table, user id)."""

    def load(self, table: Table, user_id: str, default: Any) -> Any:
        """Return the stored value, or *default* if nothing was saved."""
        ...

    def save(self, table: Table, user_id: str, value: Any) -> None:
        """Replace the stored value."""
        ...


class MemoryStore:
    """In-process store.

    Values are deep-copied on the way in and out so a caller mutating a
    loaded snapshot cannot change what is stored without calling save(),
    matching the semantics of a real serializing store.
    """

    def __init__(self) -> None:
        """Create an empty store."""
        self._tables: dict[str, dict[str, Any]] = {}

    def load(self, table: Table, user_id: str, default: Any) -> Any:
        """Return a copy of the stored value, or *default*."""
        rows = self._tables.get(table, {})
        if user_id not in rows:
            return default
        return copy.deepcopy(rows[user_id])

    def save(self, table: Table, user_id: str, value: Any) -> None:
        """Store a copy of *value*."""
        self._tables.setdefault(table, {})[user_id] = copy.deepcopy(value)

    def __contains__(self, key: tuple[Table, str]) -> bool:
        """Return True if a value is stored for ``(table, user_id)``."""
        table, user_id = key
        return user_id in self._tables.get(table, {})


class JsonFileStore:
    """Store each value as ``<root>/<table>/<user_id>.json``.

    The user id is percent-encoded in the file name.
    """

    def __init__(self, root: Path) -> None:
        """Create a store rooted at *root* (created on first save)."""
        self._root = root

    @property
    def root(self) -> Path:
        """Return the data directory."""
        return self._root

    def _path(self, table: Table, user_id: str) -> Path:
        return self._root / str(table) / f"{quote(user_id, safe='')}.json"

    def load(self, table: Table, user_id: str, default: Any) -> Any:
        """Read and decode the user's value, or return *default* if absent.

        Raises:
            json.JSONDecodeError: If the file exists but is corrupt.

        """
        path = self._path(table, user_id)
        if not path.exists():
            return default
        return json.loads(path.read_text(encoding="utf-8"))

    def save(self, table: Table, user_id: str, value: Any) -> None:
        """Encode and write the user's value, replacing any previous one."""
        path = self._path(table, user_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(value, indent=2, ensure_ascii=False), encoding="utf-8")
