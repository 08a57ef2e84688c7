from __future__ import annotations

import threading
import time
from typing import Dict, List, Optional, Protocol, Tuple

from redis import Redis


class JobStore(Protocol):
    """
    Byte-oriented key/value store with per-key TTL used to hold job progress.
    """

    def get(self, key: str) -> Optional[bytes]:
        ...

    def set(self, key: str, value: bytes, ttl: int) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def keys(self, prefix: str) -> List[str]:
        ...


class InMemoryJobStore:
    """
    In-process store for single-process deployments and tests. Expiry uses
    the monotonic clock and is applied lazily on access.
    """

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[bytes, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= self._clock():
                del self._data[key]
                return None
            return value

    def set(self, key: str, value: bytes, ttl: int) -> None:
        with self._lock:
            self._data[key] = (value, self._clock() + ttl)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self, prefix: str) -> List[str]:
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, expires_at) in self._data.items() if expires_at <= now]
            for key in expired:
                del self._data[key]
            return [k for k in self._data if k.startswith(prefix)]


class RedisJobStore:
    """
    Redis-backed store so progress survives the web process and can be
    shared with RQ workers. TTL maps directly onto `SET ... EX`.
    """

    def __init__(self, redis_url: str = "redis://localhost:6379/0", client: Optional[Redis] = None):
        self.redis = client if client is not None else Redis.from_url(redis_url)

    def get(self, key: str) -> Optional[bytes]:
        return self.redis.get(key)

    def set(self, key: str, value: bytes, ttl: int) -> None:
        self.redis.set(key, value, ex=ttl)

    def delete(self, key: str) -> None:
        self.redis.delete(key)

    def keys(self, prefix: str) -> List[str]:
        found = []
        for key in self.redis.scan_iter(match=f"{prefix}*"):
            found.append(key.decode("utf-8") if isinstance(key, bytes) else key)
        return found
