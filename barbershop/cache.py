# barbershop/cache.py
"""
Cache for read-mostly reference data, backed by cachetools.

Kept behind an object with get/set/delete semantics so a shared backend
(e.g. Redis) can replace the in-process store when the service runs as
more than one instance.
"""
import logging
import threading
import time
from typing import Any, Callable

from cachetools import TTLCache

logger = logging.getLogger(__name__)

_MISSING = object()


class Cache:
    """Entries expire ``ttl`` seconds after they were set."""

    def __init__(self, ttl: float = 60, maxsize: int = 128, timer: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._store = TTLCache(maxsize=maxsize, ttl=ttl, timer=timer)
        # cachetools caches are not thread-safe
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            value = self._store.get(key, _MISSING)
        if value is _MISSING:
            logger.debug("Cache MISS: %s", key)
            return default
        return value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._store[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def get_or_set(self, key: str, loader: Callable[[], Any]) -> Any:
        """Return the cached value, calling ``loader`` to refresh it when absent or expired.

        The loader runs outside the lock; two callers racing on a cold key may
        both load, the last write wins.
        """
        value = self.get(key, _MISSING)
        if value is not _MISSING:
            return value
        value = loader()
        self.set(key, value)
        return value
