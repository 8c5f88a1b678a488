"""Fixed-capacity least-recently-used cache."""

from collections import OrderedDict
from typing import Generic, Iterator, TypeVar

V = TypeVar("V")


class LRUCache(Generic[V]):
    """Key/value cache that evicts the least recently used entry when full.

    Backed by an ``OrderedDict`` (hash map + doubly linked list), so get, set,
    delete and evict are all O(1). The first entry is the least recently used,
    the last entry is the most recently used.
    """

    def __init__(self, capacity: int = 1000):
        if capacity < 1:
            raise ValueError("LRU capacity must be at least 1")
        self.capacity = capacity
        self._items: OrderedDict[str, V] = OrderedDict()

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._items.keys()))

    def has(self, key: str) -> bool:
        """Check membership without touching recency."""
        return key in self._items

    def get(self, key: str, default: V | None = None) -> V | None:
        """Return the cached value and promote it to most recently used."""
        if key not in self._items:
            return default
        self._items.move_to_end(key)
        return self._items[key]

    def set(self, key: str, value: V) -> None:
        """Insert or replace a value, evicting the LRU entry if at capacity."""
        if key in self._items:
            self._items[key] = value
            self._items.move_to_end(key)
            return
        if len(self._items) >= self.capacity:
            self.evict()
        self._items[key] = value

    def delete(self, key: str) -> bool:
        """Remove a key; returns whether it was present."""
        if key not in self._items:
            return False
        del self._items[key]
        return True

    def evict(self) -> str | None:
        """Drop the least recently used entry and return its key."""
        if not self._items:
            return None
        key, _ = self._items.popitem(last=False)
        return key

    def keys(self) -> list[str]:
        """Keys ordered from least to most recently used."""
        return list(self._items.keys())

    def clear(self) -> None:
        self._items.clear()
