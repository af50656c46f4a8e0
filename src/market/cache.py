"""
TTL cache for market data lookups.

Provides:
- MarketDataCache: thread-safe key/value cache with per-entry expiry
- CacheKeyClass: standard TTLs for market data, metadata and prices

Expired entries are evicted lazily on read, or in bulk via prune().
"""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class CacheKeyClass(Enum):
    """Key namespaces with their TTL in seconds."""

    MARKET_DATA = ("market_data", 60.0)
    TOKEN_METADATA = ("token_metadata", 300.0)
    PRICE = ("price", 60.0)

    def __init__(self, prefix: str, ttl: float):
        self.prefix = prefix
        self.ttl = ttl

    def key(self, address: str) -> str:
        return f"{self.prefix}:{address}"


@dataclass
class CacheEntry:
    """Cached value with absolute expiry time."""

    value: Any
    timestamp: float
    expiry: float

    def is_expired(self, now: float) -> bool:
        return now > self.expiry


class MarketDataCache:
    """
    In-process TTL cache.

    Usage:
        cache = MarketDataCache(default_ttl=60)
        cache.set_for(CacheKeyClass.PRICE, address, 1.23)
        price = cache.get_for(CacheKeyClass.PRICE, address)
    """

    def __init__(
        self,
        default_ttl: float = 60.0,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize cache.

        Args:
            default_ttl: TTL in seconds when set() is called without one
            clock: Time source (injectable for tests)
        """
        self._default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None if missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._evictions += 1
                self._misses += 1
                return None

            self._hits += 1
            return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store a value with a TTL (seconds)."""
        ttl = self._default_ttl if ttl is None else ttl
        now = self._clock()
        with self._lock:
            self._entries[key] = CacheEntry(value=value, timestamp=now, expiry=now + ttl)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def prune(self) -> int:
        """
        Drop all expired entries.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
            self._evictions += len(expired)

        if expired:
            logger.debug(f"Pruned {len(expired)} expired cache entries")
        return len(expired)

    # === Key-class helpers ===

    def get_for(self, key_class: CacheKeyClass, address: str) -> Optional[Any]:
        return self.get(key_class.key(address))

    def set_for(self, key_class: CacheKeyClass, address: str, value: Any) -> None:
        self.set(key_class.key(address), value, ttl=key_class.ttl)

    # === Introspection ===

    def __len__(self) -> int:
        now = self._clock()
        with self._lock:
            return sum(1 for e in self._entries.values() if not e.is_expired(now))

    def __contains__(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired(now)

    def stats(self) -> Dict[str, Any]:
        """Hit/miss counters for monitoring."""
        with self._lock:
            total = self._hits + self._misses
            return {
                "entries": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "hit_rate": self._hits / total if total else 0.0,
            }
