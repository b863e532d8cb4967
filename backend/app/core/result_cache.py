"""
Result Cache & Staleness Policy

Process-local cache keyed by (domain, location token, filter signature).

- age < stale_time            served as-is
- stale_time <= age < gc_time served immediately, background refresh started
- age >= gc_time              evicted, caller waits for a fresh fetch

Concurrent requests for the same key share one in-flight fetch.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class Freshness(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    EXPIRED = "expired"
    MISSING = "missing"


@dataclass(frozen=True)
class CacheKey:
    domain: str
    location: str
    signature: str


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    stored_at: float


Fetcher = Callable[[], Awaitable[Any]]


class ResultCache:
    def __init__(
        self,
        stale_time: float,
        gc_time: float,
        clock: Callable[[], float] = time.monotonic,
        name: str = "results",
    ):
        if gc_time < stale_time:
            raise ValueError("gc_time must be >= stale_time")
        self.stale_time = stale_time
        self.gc_time = gc_time
        self.clock = clock
        self.name = name
        self._entries: Dict[Any, CacheEntry] = {}
        self._inflight: Dict[Any, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key) -> bool:
        return key in self._entries

    # ------------------------------------------------------------------
    # Synchronous operations
    # ------------------------------------------------------------------

    def _freshness(self, entry: CacheEntry, now: float) -> Freshness:
        age = now - entry.stored_at
        if age < self.stale_time:
            return Freshness.FRESH
        if age < self.gc_time:
            return Freshness.STALE
        return Freshness.EXPIRED

    def lookup(self, key) -> Tuple[Optional[CacheEntry], Freshness]:
        """Return the entry and its freshness. Expired entries are evicted."""
        entry = self._entries.get(key)
        if entry is None:
            return None, Freshness.MISSING
        freshness = self._freshness(entry, self.clock())
        if freshness == Freshness.EXPIRED:
            self._entries.pop(key, None)
            return None, Freshness.EXPIRED
        return entry, freshness

    def put(self, key, value: Any) -> CacheEntry:
        # Whole-entry replacement: readers never see a partial entry
        entry = CacheEntry(value=value, stored_at=self.clock())
        self._entries[key] = entry
        return entry

    def invalidate(self, key) -> None:
        self._entries.pop(key, None)

    def gc(self) -> int:
        """Drop every expired entry. Returns the number evicted."""
        now = self.clock()
        expired = [k for k, e in self._entries.items() if self._freshness(e, now) == Freshness.EXPIRED]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"[{self.name}] gc evicted {len(expired)} entries")
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()
        for task in self._inflight.values():
            task.cancel()
        self._inflight.clear()

    def is_fetching(self, key) -> bool:
        task = self._inflight.get(key)
        return task is not None and not task.done()

    # ------------------------------------------------------------------
    # Async operations
    # ------------------------------------------------------------------

    async def _fetch_and_store(self, key, fetcher: Fetcher) -> Any:
        try:
            value = await fetcher()
            self.put(key, value)
            return value
        finally:
            if self._inflight.get(key) is asyncio.current_task():
                del self._inflight[key]

    def _start_fetch(self, key, fetcher: Fetcher) -> asyncio.Task:
        task = self._inflight.get(key)
        # A task left pending by another event loop cannot be awaited from this one
        if task is not None and not task.done() and task.get_loop() is asyncio.get_running_loop():
            return task
        task = asyncio.ensure_future(self._fetch_and_store(key, fetcher))
        self._inflight[key] = task
        return task

    @staticmethod
    def _log_background_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(f"Background refresh failed: {exc}")

    async def get_or_fetch(self, key, fetcher: Fetcher) -> Tuple[Any, Freshness]:
        """
        Serve from cache according to the staleness policy, fetching when needed.

        Returns the value and the freshness it was served with.
        """
        entry, freshness = self.lookup(key)
        if freshness == Freshness.FRESH:
            return entry.value, freshness
        if freshness == Freshness.STALE:
            self.refresh_in_background(key, fetcher)
            return entry.value, freshness

        task = self._start_fetch(key, fetcher)
        # Shield so one cancelled waiter does not cancel the shared fetch
        value = await asyncio.shield(task)
        return value, freshness

    def refresh_in_background(self, key, fetcher: Fetcher) -> asyncio.Task:
        already_running = self.is_fetching(key)
        task = self._start_fetch(key, fetcher)
        if not already_running:
            logger.debug(f"[{self.name}] background refresh for {key}")
            task.add_done_callback(self._log_background_failure)
        return task

    def prefetch(self, key, fetcher: Fetcher) -> Optional[asyncio.Task]:
        """Warm the cache without waiting. No-op when fresh or already fetching."""
        entry, freshness = self.lookup(key)
        if freshness == Freshness.FRESH or self.is_fetching(key):
            return None
        return self.refresh_in_background(key, fetcher)

    async def wait_idle(self) -> None:
        """Wait for every in-flight fetch to settle."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight.values()), return_exceptions=True)
