"""In-memory result cache with TTL and an optional durable mirror.

Entries are keyed by the extractor-derived product key. An entry is fresh
while ``now - timestamp < ttl``; stale entries stay in memory and are
simply overwritten by the next successful scrape of that key.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import structlog

from product_scraper.scrapers.base import ProductRecord
from product_scraper.services.result_store import ResultStore

logger = structlog.get_logger(__name__)


@dataclass
class CacheEntry:
    """One cached product record."""

    key: str
    timestamp: float
    ttl: float
    data: Dict[str, Any]

    def is_fresh(self, now: float) -> bool:
        return now - self.timestamp < self.ttl

    @property
    def record(self) -> ProductRecord:
        return ProductRecord.from_dict(self.data)

    def to_dict(self) -> Dict[str, Any]:
        """Durable form written to the result store."""
        return {"timestamp": self.timestamp, "data": self.data}

    @classmethod
    def from_dict(cls, key: str, payload: Dict[str, Any], ttl: float) -> "CacheEntry":
        return cls(key=key, timestamp=float(payload["timestamp"]), ttl=ttl, data=dict(payload["data"]))


class ResultCache:
    """TTL cache of successful scrape results.

    Writes for the same key are serialized so the in-memory value and the
    durable copy are always updated together. Store failures are logged
    and never reach the caller.
    """

    def __init__(
        self,
        ttl_seconds: float = 3600,
        store: Optional[ResultStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize result cache.

        Args:
            ttl_seconds: Freshness window of an entry
            store: Durable mirror, or None for memory only
            clock: Wall-clock source, injectable for tests
        """
        self.ttl = ttl_seconds
        self.store = store
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self._hits = 0
        self._misses = 0
        self.logger = logger.bind(service="result_cache")

    def now(self) -> float:
        return self._clock()

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the entry for ``key`` if present and fresh.

        Args:
            key: Product key

        Returns:
            Fresh CacheEntry, or None on a miss (absent or stale)
        """
        entry = self._entries.get(key)
        if entry is None or not entry.is_fresh(self._clock()):
            self._misses += 1
            self.logger.debug("cache_miss", key=key, stale=entry is not None)
            return None

        self._hits += 1
        self.logger.debug("cache_hit", key=key, age=round(self._clock() - entry.timestamp, 1))
        return entry

    async def put(self, key: str, record: ProductRecord) -> CacheEntry:
        """Upsert ``key`` with a freshly scraped record and mirror it to the store.

        Args:
            key: Product key
            record: Extracted product data

        Returns:
            The stored CacheEntry
        """
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                entry = CacheEntry(key=key, timestamp=self._clock(), ttl=self.ttl, data=record.to_dict())
                self._entries[key] = entry
                self.logger.info("cache_set", key=key, ttl=self.ttl)

                if self.store is not None:
                    try:
                        await self.store.persist(key, entry.to_dict())
                    except Exception as e:
                        self.logger.error("cache_persist_failed", key=key, error=str(e), exc_info=True)
        finally:
            self._release_lock(key)
        return entry

    def _release_lock(self, key: str) -> None:
        """Forget the key's write lock once no writer holds or awaits it."""
        self._lock_users[key] -= 1
        if self._lock_users[key] == 0:
            del self._lock_users[key]
            del self._locks[key]

    def entries(self) -> List[CacheEntry]:
        """All entries currently held, fresh or stale."""
        return list(self._entries.values())

    async def warm(self) -> int:
        """Load fresh entries from the store into memory.

        Returns:
            Number of entries loaded
        """
        if self.store is None:
            return 0

        try:
            stored = await self.store.list_all()
        except Exception as e:
            self.logger.error("cache_warm_failed", error=str(e), exc_info=True)
            return 0

        now = self._clock()
        loaded = 0
        for key, payload in stored:
            try:
                entry = CacheEntry.from_dict(key, payload, self.ttl)
            except (KeyError, TypeError, ValueError) as e:
                self.logger.warning("cache_entry_invalid", key=key, error=str(e))
                continue
            if not entry.is_fresh(now):
                continue
            current = self._entries.get(key)
            if current is None or current.timestamp < entry.timestamp:
                self._entries[key] = entry
                loaded += 1

        self.logger.info("cache_warmed", loaded=loaded, stored=len(stored))
        return loaded

    def stats(self) -> Dict[str, Any]:
        now = self._clock()
        fresh = sum(1 for entry in self._entries.values() if entry.is_fresh(now))
        return {
            "entries": len(self._entries),
            "fresh": fresh,
            "hits": self._hits,
            "misses": self._misses,
            "ttl_seconds": self.ttl,
            "backend": type(self.store).__name__ if self.store else "memory",
            "pending_writes": len(self._locks),
        }
