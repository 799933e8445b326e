"""Periodic trend scoring across all active items.

Every ``update_interval_minutes`` the orchestrator:
1. selects candidate items (recent trades, meaningful volume, or a stale score)
2. orders them high -> medium -> low priority
3. scores them in batches of ``batch_size``, pausing between batches
4. per item: collect factors -> score -> persist -> cache -> push to ledger

A failure on one item is logged and skipped; the rest of the cycle continues.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from apscheduler.jobstores.base import JobLookupError
from apscheduler.triggers.interval import IntervalTrigger

from trendline.core.constants import (
    CANDIDATE_MIN_VOLUME_24H,
    HIGH_PRIORITY_STALE_HOURS,
    HIGH_PRIORITY_VOLUME,
    MEDIUM_PRIORITY_STALE_HOURS,
    MEDIUM_PRIORITY_VOLUME,
    ORCHESTRATOR_INITIAL_DELAY_SECONDS,
)
from trendline.core.events import EventType
from trendline.core.logging import get_logger, job_context
from trendline.processing.trend.models import Priority, TrendCandidate, TrendResult
from trendline.storage.request_cache import ResilientCache, create_cache_key

if TYPE_CHECKING:
    from apscheduler.schedulers.asyncio import AsyncIOScheduler

    from trendline.config import Settings
    from trendline.core.events import NotificationBus
    from trendline.ledger.client import LedgerClient
    from trendline.processing.trend.factors import TrendFactorCollector
    from trendline.processing.trend.inference import InferenceClient
    from trendline.storage.database import Database

logger = get_logger(__name__)

JOB_ID = "trend_update"


def classify_priority(candidate: TrendCandidate, now: datetime) -> Priority:
    if candidate.last_trend_update is None:
        return Priority.HIGH
    stale_hours = (now - candidate.last_trend_update).total_seconds() / 3600
    if candidate.volume_24h > HIGH_PRIORITY_VOLUME or stale_hours > HIGH_PRIORITY_STALE_HOURS:
        return Priority.HIGH
    if candidate.volume_24h > MEDIUM_PRIORITY_VOLUME or stale_hours > MEDIUM_PRIORITY_STALE_HOURS:
        return Priority.MEDIUM
    return Priority.LOW


def prioritize(candidates: list[TrendCandidate], now: datetime) -> list[TrendCandidate]:
    """Assign priorities and order high -> low, then by volume descending."""
    ranked = [c.model_copy(update={"priority": classify_priority(c, now)}) for c in candidates]
    ranked.sort(key=lambda c: (c.priority.rank, -c.volume_24h))
    return ranked


class TrendOrchestrator:
    """Schedules and runs trend update cycles."""

    def __init__(
        self,
        db: Database,
        collector: TrendFactorCollector,
        inference: InferenceClient,
        settings: Settings,
        ledger: LedgerClient | None = None,
        bus: NotificationBus | None = None,
        cache: ResilientCache | None = None,
    ) -> None:
        self._db = db
        self._collector = collector
        self._inference = inference
        self._settings = settings
        self._ledger = ledger
        self._bus = bus
        self._cache = cache or ResilientCache(
            name="trend",
            default_ttl=settings.trend_cache_ttl_minutes * 60,
            max_requests_per_second=settings.cache_max_requests_per_second,
        )
        self._scheduler: AsyncIOScheduler | None = None
        self._cycle_task: asyncio.Task[None] | None = None
        self.is_running = False
        self.last_cycle_at: datetime | None = None

    @property
    def cache(self) -> ResilientCache:
        return self._cache

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    def start(self, scheduler: AsyncIOScheduler) -> None:
        """Register the periodic job. First run fires shortly after start."""
        if self._scheduler is not None:
            return
        scheduler.add_job(
            self._cycle_job,
            IntervalTrigger(minutes=self._settings.trend_update_interval_minutes),
            id=JOB_ID,
            max_instances=1,
            misfire_grace_time=None,
            next_run_time=datetime.now(UTC) + timedelta(seconds=ORCHESTRATOR_INITIAL_DELAY_SECONDS),
            replace_existing=True,
        )
        self._scheduler = scheduler
        logger.info(
            "Trend orchestrator started",
            interval_minutes=self._settings.trend_update_interval_minutes,
            batch_size=self._settings.trend_batch_size,
        )

    async def stop(self) -> None:
        """Remove the job and let any in-flight cycle finish. Idempotent."""
        if self._scheduler is not None:
            try:
                self._scheduler.remove_job(JOB_ID)
            except JobLookupError:
                pass
            self._scheduler = None
            logger.info("Trend orchestrator stopped")
        if self._cycle_task is not None and not self._cycle_task.done():
            await asyncio.shield(self._cycle_task)

    async def _cycle_job(self) -> None:
        with job_context(JOB_ID):
            try:
                await self.run_cycle()
            except Exception:
                logger.exception("Trend update cycle failed")

    # ─────────────────────────────────────────────────────────────
    # Cycle
    # ─────────────────────────────────────────────────────────────

    async def run_cycle(self) -> int:
        """Run one update cycle. Returns the number of items updated.

        A call while another cycle is in progress is ignored (returns 0).
        """
        if self.is_running:
            logger.debug("Trend cycle already running, skipping")
            return 0
        self.is_running = True
        self._cycle_task = asyncio.current_task()  # type: ignore[assignment]
        try:
            return await self._run_cycle()
        finally:
            self.is_running = False
            self._cycle_task = None
            self.last_cycle_at = datetime.now(UTC)

    async def _run_cycle(self) -> int:
        now = datetime.now(UTC)
        candidates = await self._db.get_trend_candidates(
            self._settings.trend_active_market_threshold_hours,
            CANDIDATE_MIN_VOLUME_24H,
        )
        ordered = prioritize(candidates, now)
        if not ordered:
            logger.debug("No trend candidates")
            return 0

        batch_size = self._settings.trend_batch_size
        updated = 0
        for start in range(0, len(ordered), batch_size):
            if start > 0:
                await asyncio.sleep(self._settings.trend_batch_pause_seconds)
            batch = ordered[start : start + batch_size]
            results = await asyncio.gather(*(self.update_item(c.item_id) for c in batch))
            updated += sum(1 for r in results if r is not None)

        logger.info(
            "Trend update cycle complete",
            candidates=len(ordered),
            updated=updated,
            high=sum(1 for c in ordered if c.priority is Priority.HIGH),
        )
        return updated

    async def update_item(self, item_id: str, force: bool = False) -> TrendResult | None:
        """Score one item. Returns None on failure (already logged)."""
        key = create_cache_key("trend", item_id)
        if force:
            self._cache.invalidate(key)
        try:
            return await self._cache.get(key, lambda: self._compute(item_id))
        except Exception as e:
            logger.warning("Trend update failed", item_id=item_id, error=str(e))
            return None

    async def _compute(self, item_id: str) -> TrendResult:
        factors = await self._collector.collect(item_id)
        context = await self._db.get_market_context()
        result = await self._inference.score(item_id, factors, context)
        velocity = await self._db.save_trend_result(result)

        logger.info(
            "Trend updated",
            item_id=item_id,
            score=round(result.score, 2),
            velocity=round(velocity, 4),
            provider=result.provider,
        )

        if self._ledger is not None:
            try:
                await self._ledger.push_trend_score(result)
            except Exception as e:
                logger.warning("Ledger trend push failed", item_id=item_id, error=str(e))

        if self._bus is not None:
            await self._bus.publish(
                EventType.TREND_UPDATED,
                {"itemId": item_id, "score": result.score, "velocity": velocity},
            )
        return result

    # ─────────────────────────────────────────────────────────────
    # Introspection
    # ─────────────────────────────────────────────────────────────

    def mark_for_update(self, item_id: str) -> None:
        """Drop the cached result so the next cycle rescores ``item_id``."""
        self._cache.invalidate(create_cache_key("trend", item_id))

    def clear_cache(self) -> None:
        self._cache.clear()

    def status(self) -> dict[str, object]:
        return {
            "scheduled": self._scheduler is not None,
            "cycle_running": self.is_running,
            "last_cycle_at": self.last_cycle_at.isoformat() if self.last_cycle_at else None,
            "cache": self._cache.stats(),
            "circuit_breaker": self._inference.circuit_status(),
            "config": {
                "update_interval_minutes": self._settings.trend_update_interval_minutes,
                "active_market_threshold_hours": self._settings.trend_active_market_threshold_hours,
                "cache_ttl_minutes": self._settings.trend_cache_ttl_minutes,
                "batch_size": self._settings.trend_batch_size,
            },
        }
