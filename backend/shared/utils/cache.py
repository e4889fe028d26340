"""
In-process TTL caches.

TieredCache holds three stores whose default TTLs follow data volatility:
  live       ~30s   per-event and per-source game lists
  standings  ~5min  standings-like aggregates
  schedule   ~15min slow-changing schedule metadata

StaleStore keeps the last known good league group per (source, date) for a
longer TTL and is read only when a fresh fetch has failed.

Expiry is lazy on read; sweep() only reclaims memory.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

from shared.config import Settings, get_settings
from shared.models.domain import LeagueGroup
from shared.utils.logging import get_logger
from shared.utils.metrics import CACHE_LOOKUPS

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    key: str
    value: T
    expires_at: float


class TTLStore:
    """Key/value store with a default TTL and lazy expiry."""

    def __init__(
        self,
        name: str,
        default_ttl_s: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.default_ttl_s = default_ttl_s
        self._clock = clock
        self._entries: dict[str, CacheEntry[Any]] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None or self._clock() >= entry.expires_at:
            CACHE_LOOKUPS.labels(store=self.name, result="miss").inc()
            return None
        CACHE_LOOKUPS.labels(store=self.name, result="hit").inc()
        return entry.value

    def set(self, key: str, value: Any, ttl_s: Optional[float] = None) -> None:
        ttl = self.default_ttl_s if ttl_s is None else ttl_s
        self._entries[key] = CacheEntry(key=key, value=value, expires_at=self._clock() + ttl)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def sweep(self) -> int:
        """Drop expired entries. Returns the number removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if now >= e.expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self._clock() < entry.expires_at

    def __len__(self) -> int:
        return len(self._entries)


class TieredCache:
    """Short, medium, and long TTL stores."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        s = settings or get_settings()
        self.live = TTLStore("live", s.cache_live_ttl_s, clock)
        self.standings = TTLStore("standings", s.cache_standings_ttl_s, clock)
        self.schedule = TTLStore("schedule", s.cache_schedule_ttl_s, clock)

    @property
    def stores(self) -> tuple[TTLStore, ...]:
        return (self.live, self.standings, self.schedule)

    def sweep(self) -> int:
        return sum(store.sweep() for store in self.stores)


class StaleStore:
    """Last-known-good league groups, keyed by (source, date)."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        s = settings or get_settings()
        self._store = TTLStore("stale", s.cache_stale_ttl_s, clock)

    @staticmethod
    def _key(source: str, date: str) -> str:
        return f"stale:{source}:{date}"

    def put(self, source: str, date: str, group: LeagueGroup) -> None:
        self._store.set(self._key(source, date), group)

    def get(self, source: str, date: str) -> Optional[LeagueGroup]:
        return self._store.get(self._key(source, date))

    def sweep(self) -> int:
        return self._store.sweep()


async def run_sweeper(
    cache: TieredCache,
    stale: StaleStore,
    interval_s: float,
    stop: asyncio.Event,
) -> None:
    """Background task: periodically reclaim expired entries."""
    while not stop.is_set():
        try:
            await asyncio.wait_for(stop.wait(), timeout=interval_s)
        except asyncio.TimeoutError:
            pass
        if stop.is_set():
            break
        removed = cache.sweep() + stale.sweep()
        if removed:
            logger.debug("cache_swept", removed=removed)
