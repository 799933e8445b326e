"""In-memory TTL cache with request coalescing, per-key rate limiting and retry.

Wraps an expensive async fetch:

1. fresh cached value -> returned as-is
2. same key already being fetched (started < 5s ago) -> share that result
3. more than N requests for the key in the last second -> back off 500ms, re-check
4. otherwise fetch through the retry policy and cache the result

Used for ledger account reads and for short-lived trend results.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from apscheduler.jobstores.base import JobLookupError
from apscheduler.triggers.interval import IntervalTrigger

from trendline.core.constants import INFLIGHT_REUSE_SECONDS, RATE_LIMIT_BACKOFF_SECONDS
from trendline.core.logging import get_logger, job_context
from trendline.core.retry import RetryPolicy

if TYPE_CHECKING:
    from apscheduler.schedulers.asyncio import AsyncIOScheduler

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    data: T
    written_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now - self.written_at < self.ttl


@dataclass
class _InFlight:
    task: asyncio.Task[Any]
    started_at: float


def create_cache_key(prefix: str, *params: object) -> str:
    """Build a cache key like ``account:abc123:buy``."""
    return ":".join([prefix, *(str(p) for p in params)])


class ResilientCache:
    """TTL cache in front of an async fetcher.

    Usage:
        cache = ResilientCache(default_ttl=30.0)
        account = await cache.get(f"account:{addr}", lambda: client.fetch(addr))
    """

    def __init__(
        self,
        name: str = "default",
        default_ttl: float = 30.0,
        max_requests_per_second: int = 2,
        retry_policy: RetryPolicy | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.name = name
        self._default_ttl = default_ttl
        self._max_rps = max_requests_per_second
        self._retry = retry_policy or RetryPolicy(sleep=sleep)
        self._clock = clock
        self._sleep = sleep
        self._entries: dict[str, CacheEntry[Any]] = {}
        self._inflight: dict[str, _InFlight] = {}
        self._request_log: dict[str, deque[float]] = {}
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def sweep_job_id(self) -> str:
        return f"cache_sweep:{self.name}"

    async def get(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[T]],
        ttl: float | None = None,
    ) -> T:
        """Return the cached value for ``key`` or fetch it."""
        ttl = self._default_ttl if ttl is None else ttl

        while True:
            now = self._clock()

            entry = self._entries.get(key)
            if entry is not None:
                if entry.is_fresh(now):
                    return entry.data  # type: ignore[no-any-return]
                del self._entries[key]

            inflight = self._inflight.get(key)
            if inflight is not None:
                if now - inflight.started_at < INFLIGHT_REUSE_SECONDS:
                    logger.debug("Joining in-flight request", cache=self.name, key=key)
                    return await asyncio.shield(inflight.task)  # type: ignore[no-any-return]
                self._inflight.pop(key, None)

            if self._is_rate_limited(key, now):
                logger.debug("Request rate limited, backing off", cache=self.name, key=key)
                await self._sleep(RATE_LIMIT_BACKOFF_SECONDS)
                continue
            break

        self._request_log.setdefault(key, deque()).append(now)
        task = asyncio.ensure_future(self._fetch_and_store(key, fetcher, ttl))
        self._inflight[key] = _InFlight(task=task, started_at=now)
        return await asyncio.shield(task)

    async def _fetch_and_store(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[T]],
        ttl: float,
    ) -> T:
        try:
            data = await self._retry.run(fetcher)
            self._entries[key] = CacheEntry(data=data, written_at=self._clock(), ttl=ttl)
            return data
        finally:
            current = self._inflight.get(key)
            if current is not None and current.task is asyncio.current_task():
                del self._inflight[key]

    def _is_rate_limited(self, key: str, now: float) -> bool:
        log = self._request_log.get(key)
        if not log:
            return False
        while log and now - log[0] >= 1.0:
            log.popleft()
        return len(log) >= self._max_rps

    def invalidate(self, key: str) -> bool:
        """Drop ``key``. Returns True if something was cached."""
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()
        self._request_log.clear()
        logger.debug("Cache cleared", cache=self.name)

    def sweep_expired(self) -> int:
        """Remove expired entries and idle rate-limit logs. Returns entries removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if not e.is_fresh(now)]
        for k in expired:
            del self._entries[k]

        idle = [k for k, log in self._request_log.items() if not log or now - log[-1] >= 1.0]
        for k in idle:
            del self._request_log[k]

        stale = [k for k, f in self._inflight.items() if now - f.started_at >= INFLIGHT_REUSE_SECONDS]
        for k in stale:
            del self._inflight[k]

        if expired:
            logger.debug("Cache sweep", cache=self.name, expired=len(expired))
        return len(expired)

    def stats(self) -> dict[str, int]:
        return {
            "cache_size": len(self._entries),
            "pending_requests": len(self._inflight),
            "rate_limiter_size": len(self._request_log),
        }

    # ─────────────────────────────────────────────────────────────
    # Periodic sweep
    # ─────────────────────────────────────────────────────────────

    async def _sweep_job(self) -> None:
        with job_context(self.sweep_job_id):
            try:
                self.sweep_expired()
            except Exception:
                logger.exception("Cache sweep job failed", cache=self.name)

    def start_sweeper(self, scheduler: AsyncIOScheduler, interval_minutes: int = 5) -> None:
        scheduler.add_job(
            self._sweep_job,
            IntervalTrigger(minutes=interval_minutes),
            id=self.sweep_job_id,
            max_instances=1,
            replace_existing=True,
        )
        self._scheduler = scheduler

    def stop_sweeper(self) -> None:
        if self._scheduler is None:
            return
        try:
            self._scheduler.remove_job(self.sweep_job_id)
        except JobLookupError:
            pass
        self._scheduler = None
