"""Key/value cache backends behind the CacheCoordinator.

Backends store already-serialised strings with a TTL and support deletion by
key prefix. Any failure is raised as CacheBackendError; the coordinator is
the layer that absorbs it.
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass

import redis

from .errors import CacheBackendError

logger = logging.getLogger(__name__)


class CacheBackend:
    """Interface every backend implements."""

    name = "base"

    def get(self, key: str) -> str | None:
        raise NotImplementedError

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError

    def delete_prefix(self, prefix: str) -> int:
        raise NotImplementedError

    def close(self) -> None:
        pass


class NullCacheBackend(CacheBackend):
    """Stores nothing; every read is a miss."""

    name = "null"

    def get(self, key: str) -> str | None:
        return None

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        return None

    def delete(self, key: str) -> bool:
        return False

    def delete_prefix(self, prefix: str) -> int:
        return 0


@dataclass
class CacheEntry:
    """A cached value with expiry."""

    value: str
    cached_at: float
    ttl_seconds: int

    @property
    def is_expired(self) -> bool:
        return (time.monotonic() - self.cached_at) > self.ttl_seconds


class InMemoryCacheBackend(CacheBackend):
    """Thread-safe in-process cache with TTL expiry and LRU eviction."""

    name = "memory"

    def __init__(self, max_entries: int = 5000):
        self.max_entries = max_entries
        self._cache: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self._insert_count = 0

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            if entry.is_expired:
                del self._cache[key]
                return None
            self._cache.move_to_end(key)
            return entry.value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        entry = CacheEntry(value=value, cached_at=time.monotonic(), ttl_seconds=ttl_seconds)
        with self._lock:
            self._cache[key] = entry
            self._cache.move_to_end(key)
            self._insert_count += 1

            # LRU eviction: drop the least recently read or written entry
            if len(self._cache) > self.max_entries:
                self._cache.popitem(last=False)

            # Periodic expired entry eviction (every 100 inserts)
            if self._insert_count % 100 == 0:
                expired_keys = [k for k, v in self._cache.items() if v.is_expired]
                for expired in expired_keys:
                    del self._cache[expired]

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._cache.pop(key, None) is not None

    def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            matched = [k for k in self._cache if k.startswith(prefix)]
            for key in matched:
                del self._cache[key]
            return len(matched)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def keys(self) -> list[str]:
        with self._lock:
            return [k for k, v in self._cache.items() if not v.is_expired]

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)


def _escape_glob(value: str) -> str:
    """Escape Redis MATCH glob metacharacters."""
    for char in ("\\", "*", "?", "[", "]"):
        value = value.replace(char, "\\" + char)
    return value


class RedisCacheBackend(CacheBackend):
    """Shared Redis cache with bounded socket timeouts.

    Prefix deletion walks the keyspace with SCAN rather than KEYS so a large
    cache does not block the server.
    """

    name = "redis"

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        socket_timeout: float = 0.2,
        connect_timeout: float = 1.0,
        client: "redis.Redis | None" = None,
        scan_count: int = 500,
    ):
        self.url = url
        self.scan_count = scan_count
        self._client = client or redis.Redis.from_url(
            url,
            socket_timeout=socket_timeout,
            socket_connect_timeout=connect_timeout,
            decode_responses=True,
        )

    def get(self, key: str) -> str | None:
        try:
            value = self._client.get(key)
        except redis.RedisError as e:
            raise CacheBackendError(f"GET {key} failed: {e}") from e
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            self._client.set(key, value, ex=max(int(ttl_seconds), 1))
        except redis.RedisError as e:
            raise CacheBackendError(f"SET {key} failed: {e}") from e

    def delete(self, key: str) -> bool:
        try:
            return bool(self._client.delete(key))
        except redis.RedisError as e:
            raise CacheBackendError(f"DEL {key} failed: {e}") from e

    def delete_prefix(self, prefix: str) -> int:
        pattern = _escape_glob(prefix) + "*"
        deleted = 0
        batch: list[str] = []
        try:
            for key in self._client.scan_iter(match=pattern, count=self.scan_count):
                batch.append(key)
                if len(batch) >= self.scan_count:
                    deleted += self._client.delete(*batch)
                    batch = []
            if batch:
                deleted += self._client.delete(*batch)
        except redis.RedisError as e:
            raise CacheBackendError(f"prefix delete {prefix} failed: {e}") from e
        return deleted

    def close(self) -> None:
        try:
            self._client.close()
        except redis.RedisError as e:
            logger.warning(f"Redis close failed (non-fatal): {e}")


def create_cache_backend(cache_config: dict) -> CacheBackend:
    """Build the backend named by ``cache_config['backend']``."""
    backend = cache_config.get("backend", "memory")
    if backend == "redis":
        return RedisCacheBackend(
            url=cache_config.get("url", "redis://localhost:6379/0"),
            socket_timeout=cache_config.get("socket_timeout", 0.2),
            connect_timeout=cache_config.get("connect_timeout", 1.0),
        )
    if backend in ("null", "none", "disabled"):
        return NullCacheBackend()
    if backend != "memory":
        logger.warning(f"Unknown cache backend '{backend}', falling back to memory")
    return InMemoryCacheBackend(max_entries=cache_config.get("max_entries", 5000))
