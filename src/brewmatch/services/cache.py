from __future__ import annotations

import time
from collections import OrderedDict
from typing import Any, Callable, Generic, Hashable, Optional, Tuple, TypeVar

V = TypeVar("V")

_MISSING = object()


class TTLCache(Generic[V]):
    """Bounded LRU cache whose entries expire ``ttl_sec`` after being written."""

    def __init__(self, max_entries: int, ttl_sec: float, clock: Callable[[], float] = time.time) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self.ttl_sec = ttl_sec
        self._clock = clock
        self._data: OrderedDict[Hashable, Tuple[float, V]] = OrderedDict()

    def get(self, key: Hashable, default: Any = None) -> Optional[V]:
        entry = self._data.get(key)
        if entry is None:
            return default
        ts, value = entry
        if self._clock() - ts > self.ttl_sec:
            self._data.pop(key, None)
            return default
        self._data.move_to_end(key)
        return value

    def set(self, key: Hashable, value: V) -> None:
        if key in self._data:
            self._data.pop(key)
        elif len(self._data) >= self.max_entries:
            self._purge_expired()
            if len(self._data) >= self.max_entries:
                self._data.popitem(last=False)
        self._data[key] = (self._clock(), value)

    def pop(self, key: Hashable, default: Any = None) -> Optional[V]:
        entry = self._data.pop(key, None)
        return default if entry is None else entry[1]

    def clear(self) -> None:
        self._data.clear()

    def _purge_expired(self) -> None:
        now = self._clock()
        for key in [k for k, (ts, _) in self._data.items() if now - ts > self.ttl_sec]:
            del self._data[key]

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        self._purge_expired()
        return len(self._data)
