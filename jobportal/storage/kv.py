"""Key-value stores with per-key expiry.

One-time codes, reset tokens, MFA challenges, CSRF tokens and rate-limit
counters live here rather than in the relational database. The in-memory
store is process-local; the Redis store lets several instances share state.
"""
import json
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

import redis.asyncio as aioredis

from ..config import settings
from ..config.settings import Settings
from ..core.exceptions import ConfigurationError


class KeyValueStore(ABC):
    """Abstract key-value store holding JSON-serialisable dicts."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the value for ``key`` or None when absent or expired."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Dict[str, Any], ttl_seconds: int) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove ``key``; True when something was removed."""
        pass

    @abstractmethod
    async def pop(self, key: str) -> Optional[Dict[str, Any]]:
        """Remove and return the value for ``key``."""
        pass

    @abstractmethod
    async def incr(self, key: str, ttl_seconds: int) -> Tuple[int, int]:
        """Increment a counter; the window TTL starts with the first increment.

        Returns ``(count, seconds_until_reset)``.
        """
        pass

    async def close(self) -> None:
        """Release any connections."""
        return None


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store.

    Expired keys are dropped on access, and writes sweep the whole map at most
    once per ``sweep_interval`` seconds so keys that are never read again
    (unused CSRF tokens, one-off rate-limit counters) do not accumulate.
    """

    def __init__(self, clock: Callable[[], float] = time.time, sweep_interval: float = 3600):
        self._clock = clock
        self._data: Dict[str, Tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self.sweep_interval = sweep_interval
        self._next_sweep = clock() + sweep_interval

    def _live(self, key: str) -> Optional[Tuple[Any, float]]:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry[1] <= self._clock():
            del self._data[key]
            return None
        return entry

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._live(key)
            return dict(entry[0]) if entry else None

    async def set(self, key: str, value: Dict[str, Any], ttl_seconds: int) -> None:
        with self._lock:
            now = self._clock()
            self._maybe_sweep(now)
            self._data[key] = (dict(value), now + ttl_seconds)

    async def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    async def pop(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return None
            del self._data[key]
            return dict(entry[0])

    async def incr(self, key: str, ttl_seconds: int) -> Tuple[int, int]:
        with self._lock:
            now = self._clock()
            self._maybe_sweep(now)
            entry = self._live(key)
            if entry is None:
                count, expires_at = 1, now + ttl_seconds
            else:
                count, expires_at = int(entry[0]) + 1, entry[1]
            self._data[key] = (count, expires_at)
            return count, max(int(expires_at - now), 0)

    def _sweep(self, now: float) -> int:
        expired = [key for key, (_, expires_at) in self._data.items() if expires_at <= now]
        for key in expired:
            del self._data[key]
        self._next_sweep = now + self.sweep_interval
        return len(expired)

    def _maybe_sweep(self, now: float) -> None:
        if now >= self._next_sweep:
            self._sweep(now)

    def purge_expired(self) -> int:
        """Drop every expired key; returns how many were removed."""
        with self._lock:
            return self._sweep(self._clock())

    def size(self) -> int:
        """Entries held, expired ones included until swept."""
        with self._lock:
            return len(self._data)


class RedisKeyValueStore(KeyValueStore):
    """Redis-backed store; values are JSON strings with native expiry.

    Needs Redis server 7.0 or newer: ``pop`` uses GETDEL (6.2) and ``incr``
    uses EXPIRE NX (7.0) so the window starts at the first hit.
    """

    def __init__(self, redis_url: str, *, key_prefix: str = "", socket_timeout: float = 5.0):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.client = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}:{key}" if self.key_prefix else key

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        raw = await self.client.get(self._key(key))
        return json.loads(raw) if raw else None

    async def set(self, key: str, value: Dict[str, Any], ttl_seconds: int) -> None:
        await self.client.set(self._key(key), json.dumps(value), ex=max(int(ttl_seconds), 1))

    async def delete(self, key: str) -> bool:
        return bool(await self.client.delete(self._key(key)))

    async def pop(self, key: str) -> Optional[Dict[str, Any]]:
        raw = await self.client.getdel(self._key(key))
        return json.loads(raw) if raw else None

    async def incr(self, key: str, ttl_seconds: int) -> Tuple[int, int]:
        full_key = self._key(key)
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.incr(full_key)
            pipe.expire(full_key, max(int(ttl_seconds), 1), nx=True)
            pipe.ttl(full_key)
            count, _, ttl = await pipe.execute()
        return int(count), max(int(ttl), 0)

    async def close(self) -> None:
        await self.client.aclose()


def create_kv_store(app_settings: Optional[Settings] = None) -> KeyValueStore:
    """Build the store selected by ``store.backend``."""
    app_settings = app_settings or settings
    backend = app_settings.store.backend.lower()
    if backend == "memory":
        return InMemoryKeyValueStore(sweep_interval=app_settings.store.sweep_interval_seconds)
    if backend == "redis":
        return RedisKeyValueStore(
            app_settings.redis.url,
            key_prefix=app_settings.store.key_prefix,
            socket_timeout=app_settings.redis.socket_timeout,
        )
    raise ConfigurationError(f"Unknown key-value backend: {backend}")
