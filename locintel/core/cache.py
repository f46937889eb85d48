"""
Cache-aside layer for provider results and analyses.

Provides:
- Geographic cache keys (category, center rounded to 4 dp, radius)
- In-memory backend with TTL and prefix enumeration (default)
- Null backend for deployments with caching disabled
- CacheAsideStore that degrades backend failures to misses

Usage:
    key = build_cache_key("traffic", center, 1000)
    data = await store.get_or_load(key, loader)
"""
import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from locintel.core.api_errors import CacheUnavailableError
from locintel.core.config import CacheTTLSettings
from locintel.core.geo import round_coordinates
from locintel.core.schemas import GeoPoint

logger = logging.getLogger(__name__)

# Categories keyed by area; venue details are keyed by provider id instead
AREA_CATEGORIES = ("search", "competitor", "traffic", "events", "report")

DEFAULT_TTL_SECONDS = 3600

# Backend failures that must never reach callers of the store
BACKEND_ERRORS = (CacheUnavailableError, ConnectionError, OSError)


# =============================================================================
# Keys
# =============================================================================


def area_prefix(category: str, center: GeoPoint) -> str:
    """Key prefix shared by every entry of a category around a point."""
    lat, lng = round_coordinates(center.latitude, center.longitude)
    return f"{category}:{lat}:{lng}"


def build_cache_key(
    category: str,
    center: GeoPoint,
    radius_meters: int,
    extra: Optional[str] = None,
) -> str:
    """
    Build a geographic cache key.

    Args:
        category: Cache category (search, competitor, traffic, events, report)
        center: Query center
        radius_meters: Query radius
        extra: Optional discriminator appended to the key

    Returns:
        ``<category>:<lat>:<lng>:<radius>[:<extra>]``
    """
    key = f"{area_prefix(category, center)}:{int(radius_meters)}"
    if extra:
        key = f"{key}:{extra}"
    return key


def venue_cache_key(provider: str, venue_id: str) -> str:
    """Key for a single venue's details."""
    return f"venue:{provider}:{venue_id}"


def key_category(key: str) -> str:
    return key.split(":", 1)[0]


# =============================================================================
# Entries & backends
# =============================================================================


@dataclass
class CacheEntry:
    """A single cache entry holding serialized JSON."""
    key: str
    payload: str
    written_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class CacheBackend(ABC):
    """Storage behind the cache-aside store."""

    name: str = "base"
    supports_enumeration: bool = False

    @abstractmethod
    async def get(self, key: str) -> Optional[CacheEntry]:
        """Return the entry for ``key`` or None."""

    @abstractmethod
    async def set(self, entry: CacheEntry) -> None:
        """Store an entry, replacing any previous value."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a key. True if it existed."""

    async def keys(self, prefix: str) -> List[str]:
        """Enumerate keys starting with ``prefix``."""
        raise NotImplementedError(f"{self.name} backend cannot enumerate keys")

    async def size(self) -> int:
        return 0


class InMemoryCacheBackend(CacheBackend):
    """
    In-process cache with TTL support.

    Safe for concurrent async use. Expired entries are removed lazily on
    read and periodically in bulk; the least recently used entry is
    evicted when ``max_size`` is reached.
    """

    name = "memory"
    supports_enumeration = True

    def __init__(
        self,
        max_size: int = 5000,
        cleanup_interval: float = 300,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize the backend.

        Args:
            max_size: Maximum number of entries
            cleanup_interval: How often to clean expired entries (seconds)
            clock: Time source, defaults to time.time
        """
        self.max_size = max_size
        self.cleanup_interval = cleanup_interval
        self._clock = clock or time.time

        self._cache: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = asyncio.Lock()
        self._last_cleanup = self._clock()
        self.evictions = 0

    async def get(self, key: str) -> Optional[CacheEntry]:
        async with self._lock:
            self._maybe_cleanup()

            entry = self._cache.get(key)
            if entry is None:
                return None

            if entry.is_expired(self._clock()):
                del self._cache[key]
                return None

            self._cache.move_to_end(key)
            return entry

    async def set(self, entry: CacheEntry) -> None:
        async with self._lock:
            self._maybe_cleanup()

            if entry.key in self._cache:
                self._cache.move_to_end(entry.key)
            elif len(self._cache) >= self.max_size:
                self._evict_oldest()

            self._cache[entry.key] = entry

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._cache.pop(key, None) is not None

    async def keys(self, prefix: str) -> List[str]:
        async with self._lock:
            return [key for key in self._cache if key.startswith(prefix)]

    async def size(self) -> int:
        async with self._lock:
            return len(self._cache)

    def _maybe_cleanup(self) -> None:
        """Clean up expired entries if cleanup interval has passed."""
        now = self._clock()
        if now - self._last_cleanup < self.cleanup_interval:
            return

        self._last_cleanup = now
        expired_keys = [key for key, entry in self._cache.items() if entry.is_expired(now)]
        for key in expired_keys:
            del self._cache[key]

        if expired_keys:
            logger.debug(f"Cache cleanup: removed {len(expired_keys)} expired entries")

    def _evict_oldest(self) -> None:
        if not self._cache:
            return
        self._cache.popitem(last=False)
        self.evictions += 1


class NullCacheBackend(CacheBackend):
    """Caching disabled: every read misses, writes are dropped."""

    name = "null"
    supports_enumeration = False

    async def get(self, key: str) -> Optional[CacheEntry]:
        return None

    async def set(self, entry: CacheEntry) -> None:
        return None

    async def delete(self, key: str) -> bool:
        return False


# =============================================================================
# Cache-aside store
# =============================================================================


class CacheAsideStore:
    """
    Cache-aside access over a backend with per-category TTLs.

    Values are JSON-compatible objects (pydantic ``model_dump(mode="json")``
    output). Backend errors degrade to a miss on read and a no-op on write,
    with a warning; they never propagate to callers.
    """

    def __init__(
        self,
        backend: CacheBackend,
        ttls: Optional[CacheTTLSettings] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.backend = backend
        self.ttls = ttls or CacheTTLSettings()
        self._clock = clock or time.time
        self._available = True

        # Statistics
        self._stats = {
            "hits": 0,
            "misses": 0,
            "sets": 0,
            "errors": 0,
        }

    def ttl_for(self, key: str) -> int:
        """TTL for a key, derived from its category prefix."""
        try:
            return self.ttls.for_category(key_category(key))
        except KeyError:
            return DEFAULT_TTL_SECONDS

    def _record_backend_error(self, operation: str, key: str, error: Exception) -> None:
        self._available = False
        self._stats["errors"] += 1
        logger.warning(
            f"Cache backend '{self.backend.name}' {operation} failed for {key}: {error}"
        )

    async def get(self, key: str) -> Optional[Any]:
        """
        Get a cached value.

        Returns:
            The cached value, or None on miss, expiry or backend failure
        """
        try:
            entry = await self.backend.get(key)
        except BACKEND_ERRORS as e:
            self._record_backend_error("get", key, e)
            self._stats["misses"] += 1
            return None

        self._available = True
        if entry is None or entry.is_expired(self._clock()):
            self._stats["misses"] += 1
            logger.debug(f"Cache miss for {key}")
            return None

        try:
            value = json.loads(entry.payload)
        except ValueError as e:
            logger.warning(f"Discarding unreadable cache entry {key}: {e}")
            self._stats["misses"] += 1
            return None

        self._stats["hits"] += 1
        logger.debug(f"Cache hit for {key}")
        return value

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        """
        Store a value.

        Args:
            key: Cache key
            value: JSON-compatible value
            ttl_seconds: Override of the category TTL
        """
        ttl = ttl_seconds if ttl_seconds is not None else self.ttl_for(key)
        now = self._clock()

        try:
            payload = json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            logger.warning(f"Cannot serialize cache value for {key}: {e}")
            return

        entry = CacheEntry(key=key, payload=payload, written_at=now, expires_at=now + ttl)
        try:
            await self.backend.set(entry)
        except BACKEND_ERRORS as e:
            self._record_backend_error("set", key, e)
            return

        self._available = True
        self._stats["sets"] += 1

    async def delete(self, key: str) -> bool:
        try:
            return await self.backend.delete(key)
        except BACKEND_ERRORS as e:
            self._record_backend_error("delete", key, e)
            return False

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        ttl_seconds: Optional[int] = None,
        force_refresh: bool = False,
    ) -> Any:
        """
        Return the cached value, or call ``loader`` and cache its result.

        Loader errors propagate and nothing is written. A None result is
        returned without being cached.
        """
        if not force_refresh:
            cached = await self.get(key)
            if cached is not None:
                return cached

        value = await loader()
        if value is not None:
            await self.set(key, value, ttl_seconds)
        return value

    async def invalidate_area(
        self, center: GeoPoint, radius_meters: Optional[int] = None
    ) -> bool:
        """
        Remove every area-keyed entry around a point.

        Args:
            center: Area center (rounded like the keys)
            radius_meters: Only entries written for this radius; None for all radii

        Returns:
            True if the backend could enumerate and delete, False otherwise
        """
        if not self.backend.supports_enumeration:
            logger.warning(
                f"Cache backend '{self.backend.name}' cannot enumerate keys; "
                f"area invalidation skipped"
            )
            return False

        removed = 0
        try:
            for category in AREA_CATEGORIES:
                prefix = f"{area_prefix(category, center)}:"
                for key in await self.backend.keys(prefix):
                    if radius_meters is not None:
                        radius_part = key[len(prefix):].split(":", 1)[0]
                        if radius_part != str(int(radius_meters)):
                            continue
                    if await self.backend.delete(key):
                        removed += 1
        except BACKEND_ERRORS as e:
            self._record_backend_error("invalidate", area_prefix("*", center), e)
            return False

        logger.info(
            f"Invalidated {removed} cache entries around "
            f"{center.latitude},{center.longitude} (radius={radius_meters or 'all'})"
        )
        return True

    async def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        total_requests = self._stats["hits"] + self._stats["misses"]
        hit_rate = self._stats["hits"] / total_requests if total_requests > 0 else 0.0

        try:
            size = await self.backend.size()
        except BACKEND_ERRORS as e:
            self._record_backend_error("size", "*", e)
            size = 0

        return {
            **self._stats,
            "hit_rate": round(hit_rate, 4),
            "size": size,
            "backend": self.backend.name,
            "available": self._available,
        }
