"""In-memory TTL cache for catalog price lookups.

Only quote requests read through this cache. Settlement always re-reads
the catalog so a cached price can never outlive a payment session.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from threading import Lock
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from edukart.schemas.checkout import PriceableLine, ProductType

logger = logging.getLogger(__name__)

# Sentinel stored for items the catalog could not resolve
_MISSING = object()


@dataclass
class CacheEntry:
    """A cached price with expiration."""

    value: object
    expires_at: float

    def is_expired(self) -> bool:
        """Check if this entry has expired."""
        return time.time() > self.expires_at


@dataclass
class PriceCacheConfig:
    """Configuration for catalog price caching."""

    max_size: int = 2000
    ttl_seconds: int = 60
    cleanup_interval_seconds: int = 300

    @classmethod
    def from_settings(cls) -> "PriceCacheConfig":
        """Create config from application settings."""
        from edukart.core.config import get_settings
        settings = get_settings()
        return cls(
            max_size=settings.catalog_cache_size,
            ttl_seconds=settings.catalog_cache_ttl,
        )


class PriceCache:
    """Thread-safe in-memory cache of resolved catalog lines with TTL."""

    def __init__(self, config: PriceCacheConfig | None = None) -> None:
        self.config = config or PriceCacheConfig()
        self._cache: dict[tuple[str, str], CacheEntry] = {}
        self._lock = Lock()
        self._cleanup_task: asyncio.Task | None = None

    async def start_cleanup_task(self) -> None:
        """Start background cleanup task."""
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())
            logger.info("Price cache cleanup task started")

    async def stop_cleanup_task(self) -> None:
        """Stop background cleanup task."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
            logger.info("Price cache cleanup task stopped")

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.cleanup_interval_seconds)
            count = self.cleanup()
            if count > 0:
                logger.debug("Price cache cleaned up %d expired entries", count)

    def get(self, product_type: ProductType, item_id: str) -> tuple[bool, PriceableLine | None]:
        """Look up a cached line.

        Returns:
            Tuple of (hit, line). A hit with line None means the item was
            cached as not purchasable.
        """
        key = (product_type.value, item_id)
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return False, None
            if entry.is_expired():
                del self._cache[key]
                return False, None
            value = entry.value
        return True, None if value is _MISSING else value

    def set(self, product_type: ProductType, item_id: str, line: PriceableLine | None) -> None:
        """Cache a resolved line (or its absence) with TTL."""
        key = (product_type.value, item_id)
        expires_at = time.time() + self.config.ttl_seconds

        with self._lock:
            if len(self._cache) >= self.config.max_size:
                self._evict_oldest()
            self._cache[key] = CacheEntry(
                value=_MISSING if line is None else line,
                expires_at=expires_at,
            )

    def _evict_oldest(self) -> None:
        """Evict oldest entries to make room. Must be called with lock held."""
        expired_keys = [k for k, v in self._cache.items() if v.is_expired()]
        for key in expired_keys:
            del self._cache[key]

        if len(self._cache) >= self.config.max_size:
            sorted_entries = sorted(self._cache.items(), key=lambda x: x[1].expires_at)
            to_remove = max(1, len(self._cache) // 10)
            for key, _ in sorted_entries[:to_remove]:
                del self._cache[key]
            logger.debug("Evicted %d entries from price cache", to_remove)

    def cleanup(self) -> int:
        """Remove all expired entries.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            expired_keys = [k for k, v in self._cache.items() if v.is_expired()]
            for key in expired_keys:
                del self._cache[key]
            return len(expired_keys)

    def clear(self) -> int:
        """Clear all cached entries."""
        with self._lock:
            count = len(self._cache)
            self._cache.clear()
            return count


_price_cache: PriceCache | None = None


def get_price_cache() -> PriceCache:
    """Get or create the global price cache instance."""
    global _price_cache
    if _price_cache is None:
        _price_cache = PriceCache(PriceCacheConfig.from_settings())
    return _price_cache


async def init_price_cache() -> None:
    """Initialize the price cache and start its cleanup task."""
    await get_price_cache().start_cleanup_task()


async def shutdown_price_cache() -> None:
    """Stop the cleanup task and drop cached prices."""
    global _price_cache
    if _price_cache is not None:
        await _price_cache.stop_cleanup_task()
        _price_cache.clear()
        _price_cache = None
