from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Optional, Tuple


class AbstractCache(ABC):
    """Minimal cache interface used by :class:`~abacx.store.cached.CachingPolicyStore`."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]: ...

    @abstractmethod
    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None: ...

    def delete(self, key: str) -> None:  # pragma: no cover - optional
        pass

    def clear(self) -> None:  # pragma: no cover - optional
        pass


class DefaultInMemoryCache(AbstractCache):
    """Thread-safe LRU cache with optional per-entry TTL.

    Expired entries are purged lazily on read. ``ttl`` of ``None``, zero or a
    negative number means no expiry.
    """

    def __init__(self, maxsize: int = 2048) -> None:
        self.maxsize = int(maxsize)
        self._data: "OrderedDict[str, Tuple[Optional[float], Any]]" = OrderedDict()
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            expires_at, value = item
            if expires_at is not None and time.monotonic() >= expires_at:
                del self._data[key]
                return None
            self._data.move_to_end(key)
            return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        expires_at = time.monotonic() + ttl if ttl and ttl > 0 else None
        with self._lock:
            self._data[key] = (expires_at, value)
            self._data.move_to_end(key)
            while len(self._data) > self.maxsize:
                self._data.popitem(last=False)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


__all__ = ["AbstractCache", "DefaultInMemoryCache"]
