"""
Bounded, TTL-based store of completed job results
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    value: V
    cached_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now


class ResultCache(Generic[V]):
    """Insertion-ordered cache with a size bound and per-entry expiry.

    At capacity, inserting a new key evicts the oldest-inserted entry
    whether or not it has expired. Expired entries are never returned,
    even before ``evict_expired`` removes them.
    """

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.time,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.default_ttl_seconds = default_ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry[V]]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get_entry(key) is not None

    def put(self, key: str, value: V, ttl_seconds: Optional[float] = None) -> None:
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        now = self._clock()
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            while len(self._entries) >= self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.debug("Cache full, evicted %s", evicted)
            self._entries[key] = CacheEntry(value=value, cached_at=now, expires_at=now + ttl)

    def get_entry(self, key: str) -> Optional[CacheEntry[V]]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired(now):
                del self._entries[key]
                self._expirations += 1
                self._misses += 1
                return None
            self._hits += 1
            return entry

    def get(self, key: str, default: Any = None) -> Any:
        entry = self.get_entry(key)
        return entry.value if entry is not None else default

    def evict_expired(self) -> int:
        """Drop every expired entry; returns how many were removed"""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
            self._expirations += len(expired)
        if expired:
            logger.debug("Evicted %d expired cache entries", len(expired))
        return len(expired)

    def resize(self, max_size: int) -> None:
        """Change the bound, evicting the oldest entries if it shrank"""
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        with self._lock:
            self.max_size = max_size
            while len(self._entries) > max_size:
                self._entries.popitem(last=False)
                self._evictions += 1

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> Dict[str, Any]:
        lookups = self._hits + self._misses
        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / lookups * 100, 2) if lookups else 0.0,
            "evictions": self._evictions,
            "expirations": self._expirations,
        }
