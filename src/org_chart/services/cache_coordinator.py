"""Read-through caching of records and aggregate hierarchy views.

Keys have the shape ``{namespace}:{entity_type}:{entity_id}[:{view}]``.
Collection-wide views use the id ``all`` (``department:all:tree``).

The coordinator is the failure boundary for the cache: a backend error or an
undecodable entry is logged and treated as a miss, so callers always get the
loader's answer when the cache is unavailable.
"""

import json
import logging
import threading
from typing import Any, Callable

from .cache_backend import CacheBackend
from .errors import CacheBackendError

logger = logging.getLogger(__name__)

VIEWS = ("tree", "org_chart", "hierarchy", "subordinates", "count")
RECORD = "record"
ALL = "all"

_MISS = object()


def cache_key(entity_type: Any, entity_id: Any, view: str | None = None) -> str:
    """Build an un-namespaced key for a record or one of its views."""
    entity_type = getattr(entity_type, "value", entity_type)
    if view is not None and view not in VIEWS:
        raise ValueError(f"Unknown cache view: {view}")
    key = f"{entity_type}:{entity_id}"
    if view:
        key += f":{view}"
    return key


def view_prefix(entity_type: Any, entity_id: Any) -> str:
    """Prefix matching every view key of one entity (but not its record key).

    The trailing separator keeps ``department:1:`` from matching
    ``department:10:...``.
    """
    return cache_key(entity_type, entity_id) + ":"


class CacheCoordinator:
    """Namespaced, fault-absorbing front for a CacheBackend."""

    def __init__(
        self,
        backend: CacheBackend,
        namespace: str = "org_chart_development",
        ttls: dict | None = None,
        default_ttl: int = 3600,
    ):
        self.backend = backend
        self.namespace = namespace
        self.ttls = dict(ttls or {})
        self.default_ttl = default_ttl
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._errors = 0
        self._writes = 0
        self._invalidations = 0

    def _full(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def _count(self, attr: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self, attr, getattr(self, attr) + amount)

    def ttl_for(self, view: str | None) -> int:
        """Configured TTL for a view name (or ``record`` for single records)."""
        return int(self.ttls.get(view or RECORD, self.default_ttl))

    def read(self, key: str) -> Any:
        """Return the cached value for ``key`` or None on a miss or error."""
        value = self._read(key)
        return None if value is _MISS else value

    def _read(self, key: str) -> Any:
        full_key = self._full(key)
        try:
            raw = self.backend.get(full_key)
        except CacheBackendError as e:
            self._count("_errors")
            logger.error(f"Cache read error for key '{full_key}': {e}")
            return _MISS
        if raw is None:
            return _MISS
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            self._count("_errors")
            logger.warning(f"Discarding undecodable cache entry '{full_key}': {e}")
            self.invalidate(key)
            return _MISS

    def write(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Store ``value`` under ``key``. Returns False if the backend failed."""
        full_key = self._full(key)
        ttl = self.default_ttl if ttl is None else ttl
        try:
            payload = json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            logger.warning(f"Value for cache key '{full_key}' is not serialisable: {e}")
            return False
        try:
            self.backend.set(full_key, payload, ttl)
        except CacheBackendError as e:
            self._count("_errors")
            logger.error(f"Cache write error for key '{full_key}': {e}")
            return False
        self._count("_writes")
        return True

    def fetch(self, key: str, ttl: int | None, loader: Callable[[], Any], force: bool = False) -> Any:
        """Return the cached value for ``key``, populating it from ``loader`` on a miss.

        Args:
            key: Un-namespaced cache key
            ttl: Expiry in seconds for a freshly loaded value (None for default)
            loader: Zero-argument callable reading the source of truth
            force: Skip the cache read and always run the loader

        Returns:
            The cached or freshly loaded value. Loader exceptions propagate.
        """
        if not force:
            cached = self._read(key)
            if cached is not _MISS:
                self._count("_hits")
                return cached
        self._count("_misses")
        value = loader()
        self.write(key, value, ttl)
        return value

    def invalidate(self, key: str) -> bool:
        """Delete a single key. Returns True if something was removed."""
        full_key = self._full(key)
        try:
            removed = self.backend.delete(full_key)
        except CacheBackendError as e:
            self._count("_errors")
            logger.error(f"Cache delete error for key '{full_key}': {e}")
            return False
        self._count("_invalidations")
        logger.debug(f"Invalidated cache key {full_key}")
        return removed

    def invalidate_by_prefix(self, prefix: str) -> int:
        """Delete every key that starts with ``prefix``. Returns the count removed."""
        full_prefix = self._full(prefix)
        try:
            removed = self.backend.delete_prefix(full_prefix)
        except CacheBackendError as e:
            self._count("_errors")
            logger.error(f"Cache delete_matched error for prefix '{full_prefix}': {e}")
            return 0
        self._count("_invalidations")
        logger.debug(f"Invalidated {removed} cache keys under {full_prefix}")
        return removed

    def clear(self) -> int:
        """Drop every key in this coordinator's namespace."""
        return self.invalidate_by_prefix("")

    def close(self) -> None:
        self.backend.close()

    @property
    def stats(self) -> dict:
        with self._lock:
            return {
                "backend": self.backend.name,
                "namespace": self.namespace,
                "hits": self._hits,
                "misses": self._misses,
                "errors": self._errors,
                "writes": self._writes,
                "invalidations": self._invalidations,
                "hit_rate": self._hits / max(self._hits + self._misses, 1),
            }
