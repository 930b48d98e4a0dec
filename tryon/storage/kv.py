"""Key-value store interface and in-process implementation.

The in-process store needs no external services and is what local
development and the test-suite run against. Production deployments use
``RedisKeyValueStore`` (see ``tryon.storage.redis_kv``).
"""

import copy
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple


class KeyValueStore(ABC):
    """Async key-value store holding JSON-serialisable values with optional TTL."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None when absent or expired."""
        ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Store a value. ``ttl`` is in seconds; None keeps it forever."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a key. Returns True if it existed."""
        ...

    @abstractmethod
    async def list_append(self, key: str, item: Any, max_len: Optional[int] = None) -> None:
        """Atomically append ``item`` to the list at ``key``, keeping the newest ``max_len``."""
        ...

    @abstractmethod
    async def list_items(self, key: str) -> List[Any]:
        """Items of the list at ``key`` in insertion order (empty when absent)."""
        ...

    @abstractmethod
    async def list_remove(self, key: str, item: Any) -> int:
        """Remove every occurrence of ``item``. Returns how many were removed."""
        ...

    @abstractmethod
    async def ping(self) -> bool:
        ...

    async def close(self) -> None:
        return None


class InMemoryKeyValueStore(KeyValueStore):
    """Dict-backed store with lazy expiry."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._data: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._clock = clock

    async def get(self, key: str) -> Optional[Any]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        # Callers mutate what they read; never hand out the stored object
        return copy.deepcopy(value)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        self._data[key] = (copy.deepcopy(value), expires_at)

    async def delete(self, key: str) -> bool:
        existed = await self.get(key) is not None
        self._data.pop(key, None)
        return existed

    async def list_append(self, key: str, item: Any, max_len: Optional[int] = None) -> None:
        # Read and write with no await in between
        entry = self._data.get(key)
        items = entry[0] if entry is not None else []
        items.append(copy.deepcopy(item))
        if max_len is not None and len(items) > max_len:
            del items[:-max_len]
        self._data[key] = (items, None)

    async def list_items(self, key: str) -> List[Any]:
        return list(await self.get(key) or [])

    async def list_remove(self, key: str, item: Any) -> int:
        entry = self._data.get(key)
        if entry is None:
            return 0
        kept = [i for i in entry[0] if i != item]
        removed = len(entry[0]) - len(kept)
        self._data[key] = (kept, None)
        return removed

    async def ping(self) -> bool:
        return True

    def ttl(self, key: str) -> Optional[float]:
        """Seconds until ``key`` expires (None if absent or persistent)."""
        entry = self._data.get(key)
        if entry is None or entry[1] is None:
            return None
        return entry[1] - self._clock()


def build_store(settings) -> KeyValueStore:
    """Create the store selected by ``settings.kv_backend``."""
    if settings.kv_backend == "memory":
        return InMemoryKeyValueStore()
    if settings.kv_backend == "redis":
        from tryon.storage.redis_kv import RedisKeyValueStore

        return RedisKeyValueStore.from_url(settings.redis_url)
    raise ValueError(
        f"Unknown kv_backend '{settings.kv_backend}'. Available: ['memory', 'redis']"
    )
