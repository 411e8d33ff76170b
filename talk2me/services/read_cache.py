"""Read Cache — session-scoped TTL memoization with single-flight loads.

Invariants:
    - get()/lookup() return a value only while age < ttl; expiry is lazy (checked on read)
    - set() overwrites unconditionally
    - Concurrent get_or_load() calls for one key share a single loader call
    - Failed loads are never cached; every waiter sees the same exception
    - clear() bumps the generation: loads started before it never populate the cache
    - invalidate()/invalidate_prefix() detach in-flight loads: their results reach their
      waiters but are never cached

Design Decisions:
    - Owned by the session, never a module singleton (chain changes must drop it atomically)
    - Injected clock (monotonic by default): TTL tests advance time without sleeping
    - In-flight loads are tasks awaited through asyncio.shield: one waiter's cancellation
      does not cancel the shared load
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from talk2me.core.models import CacheEntry

logger = logging.getLogger(__name__)


class ReadCache:
    """TTL-windowed memoization over ledger reads."""

    def __init__(
        self, default_ttl_s: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl_s = default_ttl_s
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._inflight: dict[str, asyncio.Task] = {}
        self.generation = 0

    def lookup(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_fresh(self._clock()):
            del self._entries[key]
            return None
        return entry

    def get(self, key: str, default: Any = None) -> Any:
        entry = self.lookup(key)
        return entry.value if entry else default

    def set(self, key: str, value: Any, ttl_s: float | None = None) -> None:
        self._entries[key] = CacheEntry(
            key, value, self._clock(),
            self.default_ttl_s if ttl_s is None else ttl_s,
        )

    async def get_or_load(
        self, key: str, loader: Callable[[], Awaitable[Any]],
        ttl_s: float | None = None,
    ) -> Any:
        """Fresh cached value, or the result of exactly one in-flight loader call."""
        entry = self.lookup(key)
        if entry is not None:
            return entry.value

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(
                self._load(key, loader, ttl_s, self.generation),
            )
            self._inflight[key] = task
            task.add_done_callback(lambda t: self._forget(key, t))
        else:
            logger.debug("Joined in-flight read", extra={"cache_key": key})
        return await asyncio.shield(task)

    async def _load(self, key, loader, ttl_s, generation) -> Any:
        value = await loader()
        # invalidated or cleared while loading: the value is already stale
        current = self._inflight.get(key) is asyncio.current_task()
        if generation == self.generation and current:
            self.set(key, value, ttl_s)
        return value

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)
        self._inflight.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> None:
        for key in [k for k in self._entries if k.startswith(prefix)]:
            del self._entries[key]
        for key in [k for k in self._inflight if k.startswith(prefix)]:
            del self._inflight[key]

    def clear(self) -> None:
        self.generation += 1
        self._entries.clear()
        self._inflight.clear()

    def __len__(self) -> int:
        return len(self._entries)
