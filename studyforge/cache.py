"""In-process TTL cache shared by every cached call site.

Entries expire lazily: every read compares the clock with the entry's
deadline, so a stale value is never returned. A background sweeper reclaims
memory from expired entries on its own period, which is tuned independently
of any TTL.

Callers namespace their keys (``search:...``, ``api:...``) and share the one
instance built at startup.
"""
import asyncio
import copy
import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import structlog

from studyforge.errors import ConfigurationError

logger = structlog.get_logger()


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


def make_key(namespace: str, *parts: Any) -> str:
    """Join key parts under a namespace, e.g. ``search:doc-1:ab12:5``."""
    return ":".join([namespace, *(str(p) for p in parts)])


def canonical_json(value: Any) -> str:
    """Stable JSON text for building keys from request bodies."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


class TTLCache:
    """Thread-safe key-value cache with per-entry time-to-live."""

    def __init__(
        self,
        default_ttl: float = 3600,
        check_period: float = 600,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the cache.

        Args:
            default_ttl: TTL in seconds used when ``set`` gets none
            check_period: Seconds between background eviction sweeps
            max_entries: Optional bound on the number of live entries
            clock: Monotonic time source, injectable for tests
        """
        if default_ttl <= 0 or check_period <= 0:
            raise ConfigurationError("Cache TTL and check period must be positive")
        if max_entries is not None and max_entries < 1:
            raise ConfigurationError("Cache max_entries must be at least 1")

        self.default_ttl = default_ttl
        self.check_period = check_period
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._sweeper: Optional[asyncio.Task] = None
        self._hits = 0
        self._misses = 0

    def get(self, key: str, default: Any = None) -> Any:
        """Return a copy of the live value for ``key``, or ``default``."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return default
            if entry.expires_at <= self._clock():
                del self._entries[key]
                self._misses += 1
                return default
            self._hits += 1
            return copy.deepcopy(entry.value)

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store a copy of ``value`` for ``ttl`` seconds."""
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            raise ConfigurationError(f"Cache TTL must be positive, got {ttl}")

        entry = CacheEntry(value=copy.deepcopy(value), expires_at=self._clock() + ttl)
        with self._lock:
            self._entries.pop(key, None)
            if self.max_entries is not None and len(self._entries) >= self.max_entries:
                self._purge_locked()
                while len(self._entries) >= self.max_entries:
                    oldest = next(iter(self._entries))
                    del self._entries[oldest]
            self._entries[key] = entry

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def delete_prefix(self, prefix: str) -> int:
        """Drop every key starting with ``prefix``; returns how many."""
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def purge_expired(self) -> int:
        """Remove expired entries now; returns the number removed."""
        with self._lock:
            return self._purge_locked()

    def _purge_locked(self) -> int:
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "keys": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "sweeper_running": self.sweeper_running,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # Background eviction

    @property
    def sweeper_running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    def start(self) -> None:
        """Start the periodic eviction sweep on the running event loop."""
        if self.sweeper_running:
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())
        logger.info("cache_sweeper_started", check_period=self.check_period)

    async def stop(self) -> None:
        """Stop the eviction sweep and wait for it to exit."""
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
        logger.info("cache_sweeper_stopped")

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.check_period)
            removed = self.purge_expired()
            if removed:
                logger.debug("cache_expired_entries_evicted", count=removed)
