"""In-process LRU cache with per-namespace TTLs.

Built on ``cachetools.LRUCache``. Every entry carries its own expiry
timestamp and is dropped when a lookup finds it stale. At capacity an expired
entry is evicted first, otherwise the least-recently-used one. There is no
background sweep.

A failure inside the cache never reaches the caller: it is logged and the
operation degrades to a miss (``get``) or a no-op (``set``/``delete``).
"""
from __future__ import annotations

import hashlib
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from cachetools import Cache, LRUCache

logger = logging.getLogger(__name__)


class CacheNamespace(str, Enum):
    EMBEDDING = "embedding"
    SEARCH = "search"
    MODELS = "models"
    PROVIDER_STATUS = "provider_status"


@dataclass(frozen=True, slots=True)
class CacheTTLs:
    """Seconds each namespace's entries stay fresh."""

    embedding: float = 3600.0
    search: float = 300.0
    models: float = 86400.0
    provider_status: float = 30.0

    def for_namespace(self, namespace: CacheNamespace) -> float:
        return getattr(self, CacheNamespace(namespace).value)


@dataclass(frozen=True, slots=True)
class _Entry:
    value: Any
    expires_at: float


class _ExpiringLRUCache(LRUCache):
    """LRUCache that evicts an already-expired entry before a live one."""

    def __init__(self, maxsize: int, timer: Callable[[], float]) -> None:
        super().__init__(maxsize=maxsize)
        self.timer = timer

    def expired_keys(self, now: float) -> list[str]:
        # Base-class access leaves the LRU order untouched.
        return [k for k in Cache.__iter__(self) if Cache.__getitem__(self, k).expires_at <= now]

    def popitem(self):
        expired = self.expired_keys(self.timer())
        if expired:
            key = expired[0]
            return key, self.pop(key)
        return super().popitem()


# ------------------------------------------------------------------
# Key builders
# ------------------------------------------------------------------


def query_hash(query: str) -> str:
    """Stable digest of a search query, whitespace- and case-normalized."""
    normalized = " ".join(query.split()).lower()
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:16]


def embedding_key(model_name: str, uri: str) -> str:
    return f"{CacheNamespace.EMBEDDING.value}:{model_name}:{uri}"


def search_key(
    model_name: str, query: str, limit: int, metric: str, threshold: float | None = None
) -> str:
    key = f"{CacheNamespace.SEARCH.value}:{model_name}:{query_hash(query)}:{limit}:{metric}"
    return key if threshold is None else f"{key}:{threshold}"


def models_key(provider: str) -> str:
    return f"{CacheNamespace.MODELS.value}:{provider}"


def provider_status_key(provider: str) -> str:
    return f"{CacheNamespace.PROVIDER_STATUS.value}:{provider}"


class EmbeddingCache:
    """Thread-safe TTL+LRU cache shared by the store, search and provider paths.

    Construct one per process (or per test) and pass it to the services that
    need it; call :meth:`close` on shutdown.
    """

    def __init__(
        self,
        *,
        max_size: int = 1000,
        ttls: CacheTTLs | None = None,
        enabled: bool = True,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttls = ttls or CacheTTLs()
        self.enabled = enabled
        self._lock = threading.RLock()
        self._timer = timer
        self._cache = _ExpiringLRUCache(max_size, timer)
        self._stats: dict[str, int] = {
            "hits": 0,
            "misses": 0,
            "sets": 0,
            "deletes": 0,
            "errors": 0,
        }

    @classmethod
    def from_settings(cls, settings) -> "EmbeddingCache":
        return cls(
            max_size=settings.CACHE_MAX_SIZE,
            enabled=settings.CACHE_ENABLED,
            ttls=CacheTTLs(
                embedding=settings.CACHE_EMBEDDING_TTL,
                search=settings.CACHE_SEARCH_TTL,
                models=settings.CACHE_MODELS_TTL,
                provider_status=settings.CACHE_PROVIDER_STATUS_TTL,
            ),
        )

    def get(self, key: str) -> Any | None:
        """Return the cached value, or ``None`` if absent or expired."""
        if not self.enabled:
            return None
        with self._lock:
            try:
                entry = self._cache.get(key)
                if entry is not None and entry.expires_at <= self._timer():
                    del self._cache[key]
                    entry = None
            except Exception as e:
                self._stats["errors"] += 1
                logger.warning("Cache read failed for %s: %s", key, e)
                return None
            if entry is None:
                self._stats["misses"] += 1
                return None
            self._stats["hits"] += 1
            return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> bool:
        """Store *value* for *ttl* seconds (namespace default when omitted)."""
        if not self.enabled or value is None:
            return False
        if ttl is None:
            ttl = self._ttl_for_key(key)
        with self._lock:
            try:
                self._cache[key] = _Entry(value=value, expires_at=self._timer() + ttl)
            except Exception as e:
                self._stats["errors"] += 1
                logger.warning("Failed to store in cache %s: %s", key, e)
                return False
            self._stats["sets"] += 1
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            try:
                removed = self._cache.pop(key, None) is not None
            except Exception as e:
                self._stats["errors"] += 1
                logger.warning("Cache delete failed for %s: %s", key, e)
                return False
            if removed:
                self._stats["deletes"] += 1
            return removed

    def delete_prefix(self, prefix: str) -> int:
        """Drop every entry whose key starts with *prefix*."""
        with self._lock:
            try:
                doomed = [k for k in list(self._cache.keys()) if k.startswith(prefix)]
                for k in doomed:
                    self._cache.pop(k, None)
            except Exception as e:
                self._stats["errors"] += 1
                logger.warning("Cache prefix delete failed for %s: %s", prefix, e)
                return 0
            self._stats["deletes"] += len(doomed)
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def close(self) -> None:
        """Release all entries; the instance stays usable afterwards."""
        self.clear()
        logger.debug("Cache closed")

    def stats(self) -> dict[str, Any]:
        with self._lock:
            lookups = self._stats["hits"] + self._stats["misses"]
            return {
                **self._stats,
                "size": len(self._cache),
                "max_size": self._cache.maxsize,
                "hit_rate": (self._stats["hits"] / lookups) if lookups else 0.0,
                "enabled": self.enabled,
            }

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired(self._timer())
            return len(self._cache)

    def _purge_expired(self, now: float) -> None:
        for k in self._cache.expired_keys(now):
            del self._cache[k]

    def _ttl_for_key(self, key: str) -> float:
        namespace = key.split(":", 1)[0]
        try:
            return self.ttls.for_namespace(CacheNamespace(namespace))
        except ValueError:
            return self.ttls.search
