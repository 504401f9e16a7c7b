"""TTL caches for room listings and occupancy lookups."""
from __future__ import annotations

import threading
from typing import Callable, Generic, Hashable, Optional, TypeVar

from cachetools import TTLCache

T = TypeVar("T")


class RoomCache(Generic[T]):
    """Thread-safe TTL cache keyed per room, with invalidation by room id.

    Keys are ``(room_id, *extra)`` tuples so every entry derived from a room
    can be dropped at once when that room changes.
    """

    def __init__(self, ttl: int, maxsize: int = 256) -> None:
        self._cache: TTLCache[tuple, T] = TTLCache(maxsize=maxsize, ttl=ttl)
        self._lock = threading.Lock()

    @property
    def ttl(self) -> float:
        return self._cache.ttl

    def get(self, room_id: Optional[int], *extra: Hashable) -> Optional[T]:
        with self._lock:
            return self._cache.get((room_id, *extra))

    def set(self, value: T, room_id: Optional[int], *extra: Hashable) -> None:
        with self._lock:
            self._cache[(room_id, *extra)] = value

    def get_or_load(self, loader: Callable[[], T], room_id: Optional[int], *extra: Hashable) -> T:
        cached = self.get(room_id, *extra)
        if cached is not None:
            return cached
        value = loader()
        self.set(value, room_id, *extra)
        return value

    def invalidate(self, room_id: Optional[int]) -> None:
        """Drop the room's entries and every room-independent entry such as listings."""
        with self._lock:
            for key in [key for key in self._cache.keys() if key[0] in (room_id, None)]:
                self._cache.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
