"""In-process read-through cache with TTL expiry and LRU eviction."""

import logging
import threading
import time
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Set

from ..core.config import CacheConfig
from ..errors import CacheLoaderFailed

logger = logging.getLogger(__name__)


class CacheTTL:
    """Time-to-live classes in seconds."""

    USER_PROFILE = 30 * 60
    LEAD_SCORE = 5 * 60
    ASSESSMENT_RESULTS = 60 * 60
    CONTENT = 24 * 60 * 60
    LISTINGS = 15 * 60


@dataclass
class CacheEntry:
    key: str
    value: Any
    expires_at: float
    last_accessed_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class CacheStats:
    hits: int
    misses: int
    size: int
    hit_rate: float
    evictions: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "size": self.size,
            "hit_rate": self.hit_rate,
            "evictions": self.evictions,
        }


class ReadThroughCache:
    """Keyed cache that fills itself from a loader on miss.

    Entries expire after their TTL. The map is bounded by `capacity`; the least
    recently used entry is evicted first. Once the map grows past
    `sweep_threshold` a janitor pass (at most once per `sweep_interval`) drops
    expired entries and entries nobody has read for `stale_after` seconds.

    Loaders run outside the map lock. Each miss holds a load ticket for its
    key; any put, delete or invalidate of that key revokes outstanding
    tickets, and a load whose ticket was revoked is not cached. A slow reader
    can therefore never overwrite a value written while it was loading.
    """

    def __init__(self, config: Optional[CacheConfig] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.config = config or CacheConfig()
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._last_sweep = clock()
        self._load_seq = 0
        self._pending: Dict[str, Set[int]] = {}
        self._executor: Optional[ThreadPoolExecutor] = None

    def get(self, key: str, loader: Callable[[], Any], ttl: float,
            timeout: Optional[float] = None) -> Any:
        """Get a cached value, loading and caching it on miss.

        Loader exceptions propagate and nothing is cached. With a timeout the
        loader runs on a worker thread and CacheLoaderFailed is raised when it
        does not finish in time.
        """
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and not entry.is_expired(now):
                entry.last_accessed_at = now
                self._entries.move_to_end(key)
                self._hits += 1
                logger.debug(f"Cache HIT for {key}")
                return entry.value
            if entry is not None:
                del self._entries[key]
            self._misses += 1
            self._load_seq += 1
            ticket = self._load_seq
            self._pending.setdefault(key, set()).add(ticket)

        logger.debug(f"Cache MISS for {key}")
        if timeout is None:
            timeout = self.config.loader_timeout_seconds
        try:
            value = self._load(key, loader, timeout)
        except Exception:
            with self._lock:
                self._release_ticket(key, ticket)
            raise

        now = self._clock()
        with self._lock:
            if not self._release_ticket(key, ticket):
                # Written while we were loading; the newer value stands
                logger.debug(f"Discarding stale load for {key}")
                entry = self._entries.get(key)
                return entry.value if entry is not None else value
            should_sweep = self._insert(key, value, ttl, now)
        if should_sweep:
            self.sweep()
        return value

    def _release_ticket(self, key: str, ticket: int) -> bool:
        """Drop a load ticket. Returns False if a write revoked it. Caller holds the lock."""
        tickets = self._pending.get(key)
        if tickets is None or ticket not in tickets:
            return False
        tickets.discard(ticket)
        if not tickets:
            del self._pending[key]
        return True

    def _load(self, key: str, loader: Callable[[], Any], timeout: Optional[float]) -> Any:
        if timeout is None:
            return loader()

        if self._executor is None:
            with self._lock:
                if self._executor is None:
                    self._executor = ThreadPoolExecutor(
                        max_workers=4, thread_name_prefix="cache-loader"
                    )
        future = self._executor.submit(loader)
        try:
            return future.result(timeout=timeout)
        except FutureTimeout:
            future.cancel()
            logger.warning(f"Loader for {key} exceeded {timeout}s")
            raise CacheLoaderFailed(key, timeout)

    def put(self, key: str, value: Any, ttl: float):
        """Insert or replace an entry."""
        now = self._clock()
        with self._lock:
            self._pending.pop(key, None)
            should_sweep = self._insert(key, value, ttl, now)
        if should_sweep:
            self.sweep()

    def _insert(self, key: str, value: Any, ttl: float, now: float) -> bool:
        """Store an entry and evict past capacity. Caller holds the lock.

        Returns whether a janitor sweep is due.
        """
        self._entries[key] = CacheEntry(
            key=key, value=value, expires_at=now + ttl, last_accessed_at=now
        )
        self._entries.move_to_end(key)
        while len(self._entries) > self.config.capacity:
            evicted, _ = self._entries.popitem(last=False)
            self._evictions += 1
            logger.debug(f"Evicted {evicted} (capacity {self.config.capacity})")
        return (
            len(self._entries) > self.config.sweep_threshold
            and now - self._last_sweep >= self.config.sweep_interval_seconds
        )

    def peek(self, key: str) -> Optional[Any]:
        """Get a live value without loading or touching stats."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.is_expired(now):
                return None
            return entry.value

    def delete(self, key: str) -> bool:
        """Remove one key. Returns whether it was cached."""
        with self._lock:
            self._pending.pop(key, None)
            return self._entries.pop(key, None) is not None

    def invalidate(self, prefix: str) -> int:
        """Remove every key starting with prefix. Returns the number removed."""
        with self._lock:
            keys = [k for k in self._entries if k.startswith(prefix)]
            for key in [k for k in self._pending if k.startswith(prefix)]:
                del self._pending[key]
            for key in keys:
                del self._entries[key]
        if keys:
            logger.debug(f"Invalidated {len(keys)} entries for prefix {prefix!r}")
        return len(keys)

    def clear(self):
        with self._lock:
            self._entries.clear()
            self._pending.clear()

    def sweep(self) -> int:
        """Drop expired and stale entries. Returns the number removed."""
        now = self._clock()
        stale_before = now - self.config.stale_after_seconds
        with self._lock:
            doomed = [
                key for key, entry in self._entries.items()
                if entry.is_expired(now) or entry.last_accessed_at < stale_before
            ]
            for key in doomed:
                del self._entries[key]
            self._evictions += len(doomed)
            self._last_sweep = now
        if doomed:
            logger.info(f"Cache sweep removed {len(doomed)} entries")
        return len(doomed)

    def stats(self) -> CacheStats:
        with self._lock:
            total = self._hits + self._misses
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                size=len(self._entries),
                hit_rate=self._hits / total if total else 0.0,
                evictions=self._evictions,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def shutdown(self):
        """Stop the loader pool."""
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
