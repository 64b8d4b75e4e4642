"""Thread-safe keyed storage for in-flight remote task state."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from typing import Generic, TypeVar

V = TypeVar("V")


class KeyedStore(Generic[V]):
    """A named mapping from task id to one piece of task state.

    Values are stored as-is, so text containing whitespace, quotes or newlines
    round-trips unchanged. ``get`` on a missing key raises ``KeyError``.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._items: dict[str, V] = {}
        self._lock = threading.Lock()

    def set(self, key: str, value: V) -> None:
        with self._lock:
            self._items[key] = value

    def get(self, key: str) -> V:
        with self._lock:
            try:
                return self._items[key]
            except KeyError:
                raise KeyError(f"{self.name}: no entry for '{key}'") from None

    def unset(self, key: str) -> None:
        """Remove ``key``; removing a missing key is a no-op."""
        with self._lock:
            self._items.pop(key, None)

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._items

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._items)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())
