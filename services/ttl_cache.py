"""Tiny TTL cache used for slowly changing upstream lists."""
from __future__ import annotations

import time
from typing import Callable, Dict, Generic, Optional, Tuple, TypeVar

V = TypeVar("V")

__all__ = ["TTLCache"]


class TTLCache(Generic[V]):
    """Map keys to values that expire ``ttl`` seconds after being stored.

    Entries are only dropped when read after expiry; there is no explicit
    eviction and no locking, concurrent writers simply overwrite each other.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = float(ttl)
        self._clock = clock
        self._entries: Dict[str, Tuple[float, V]] = {}

    def get(self, key: str) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at < self.ttl:
            return value
        self._entries.pop(key, None)
        return None

    def set(self, key: str, value: V) -> None:
        self._entries[key] = (self._clock(), value)

    def fetched_at(self, key: str) -> Optional[float]:
        entry = self._entries.get(key)
        return entry[0] if entry else None

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
