"""Flash market lifecycle: open on spike, resolve on expiry.

created -> active -> expired -> resolved

Two periodic jobs drive it: a spike scan (every 2s by default) that opens
markets, and an expiry scan (every 5s) that resolves them. Resolution needs
two trend history points; with fewer it is deferred to the next scan.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from apscheduler.jobstores.base import JobLookupError
from apscheduler.triggers.interval import IntervalTrigger

from trendline.core.events import EventType
from trendline.core.logging import get_logger, job_context
from trendline.processing.flash.detector import compute_velocity
from trendline.processing.flash.models import (
    Direction,
    FlashMarket,
    PayoutSummary,
    ZeroWinnerPolicy,
)
from trendline.processing.flash.payouts import calculate_payouts

if TYPE_CHECKING:
    from apscheduler.schedulers.asyncio import AsyncIOScheduler

    from trendline.config import Settings
    from trendline.core.events import NotificationBus
    from trendline.ledger.client import LedgerClient
    from trendline.processing.flash.detector import VelocitySpikeDetector
    from trendline.storage.database import Database

logger = get_logger(__name__)

SPIKE_JOB_ID = "flash_spike_scan"
EXPIRY_JOB_ID = "flash_expiry_scan"


class FlashMarketLifecycle:
    """Opens and settles flash markets."""

    def __init__(
        self,
        db: Database,
        detector: VelocitySpikeDetector,
        bus: NotificationBus,
        settings: Settings,
        ledger: LedgerClient | None = None,
    ) -> None:
        self._db = db
        self._detector = detector
        self._bus = bus
        self._settings = settings
        self._ledger = ledger
        self._scheduler: AsyncIOScheduler | None = None
        self._policy = ZeroWinnerPolicy(settings.flash_zero_winner_policy)

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    def start(self, scheduler: AsyncIOScheduler) -> None:
        if self._scheduler is not None:
            return
        scheduler.add_job(
            self._spike_job,
            IntervalTrigger(seconds=self._settings.flash_spike_scan_seconds),
            id=SPIKE_JOB_ID,
            max_instances=1,
            replace_existing=True,
        )
        scheduler.add_job(
            self._expiry_job,
            IntervalTrigger(seconds=self._settings.flash_expiry_scan_seconds),
            id=EXPIRY_JOB_ID,
            max_instances=1,
            replace_existing=True,
        )
        self._scheduler = scheduler
        logger.info(
            "Flash market lifecycle started",
            velocity_threshold=self._settings.flash_velocity_threshold,
            cooldown_ms=self._settings.flash_cooldown_ms,
        )

    def stop(self) -> None:
        if self._scheduler is None:
            return
        for job_id in (SPIKE_JOB_ID, EXPIRY_JOB_ID):
            try:
                self._scheduler.remove_job(job_id)
            except JobLookupError:
                pass
        self._scheduler = None
        logger.info("Flash market lifecycle stopped")

    async def _spike_job(self) -> None:
        with job_context(SPIKE_JOB_ID):
            try:
                await self.scan_for_spikes()
            except Exception:
                logger.exception("Flash spike scan failed")

    async def _expiry_job(self) -> None:
        with job_context(EXPIRY_JOB_ID):
            try:
                await self.resolve_expired()
            except Exception:
                logger.exception("Flash expiry scan failed")

    # ─────────────────────────────────────────────────────────────
    # Creation
    # ─────────────────────────────────────────────────────────────

    async def scan_for_spikes(self) -> list[FlashMarket]:
        item_ids = await self._db.get_spike_candidates(
            self._settings.flash_min_trend_score,
            self._settings.flash_scan_limit,
        )
        created: list[FlashMarket] = []
        for item_id in item_ids:
            try:
                velocity = await self._detector.detect(item_id)
                if velocity is None:
                    continue
                created.append(await self.create_market(item_id, velocity))
            except Exception as e:
                logger.warning("Spike handling failed", item_id=item_id, error=str(e))
        self._detector.prune()
        return created

    async def create_market(self, item_id: str, velocity: float) -> FlashMarket:
        now = datetime.now(UTC)
        market = FlashMarket(
            item_id=item_id,
            snapshot_weights=await self._db.get_item_weights(item_id),
            start_time=now,
            end_time=now + timedelta(seconds=self._settings.flash_duration_seconds),
            initial_velocity=velocity,
        )
        await self._db.insert_flash_market(market)

        if self._ledger is not None:
            try:
                await self._ledger.create_flash_market(market)
            except Exception as e:
                logger.warning(
                    "Ledger flash market creation failed",
                    market_id=str(market.id),
                    error=str(e),
                )

        await self._bus.publish(
            EventType.FLASH_MARKET_CREATED,
            {
                "marketId": str(market.id),
                "itemId": item_id,
                "velocity": velocity,
                "endTime": market.end_time.isoformat(),
            },
        )
        logger.info(
            "Flash market created",
            market_id=str(market.id),
            item_id=item_id,
            velocity=round(velocity, 3),
            end_time=market.end_time.isoformat(),
        )
        return market

    # ─────────────────────────────────────────────────────────────
    # Resolution
    # ─────────────────────────────────────────────────────────────

    async def resolve_expired(self) -> int:
        """Resolve every active market past its end time. Returns markets resolved."""
        markets = await self._db.get_expired_flash_markets(datetime.now(UTC))
        resolved = 0
        for market in markets:
            try:
                if await self.resolve_market(market) is not None:
                    resolved += 1
            except Exception as e:
                logger.warning("Flash market resolution failed", market_id=str(market.id), error=str(e))
        return resolved

    async def resolve_market(self, market: FlashMarket) -> PayoutSummary | None:
        """Settle ``market``. None if resolution is deferred or already done."""
        if market.is_resolved:
            return None

        history = await self._db.get_trend_history(market.item_id, limit=2)
        if len(history) < 2:
            logger.debug("Not enough history to resolve, deferring", market_id=str(market.id))
            return None

        final_velocity = compute_velocity(history)
        winning_side = (
            Direction.UP if final_velocity - market.initial_velocity >= 0 else Direction.DOWN
        )
        positions = await self._db.get_unresolved_positions(market.id)
        summary = calculate_payouts(positions, winning_side, self._policy)

        settled = await self._db.settle_flash_market(
            market.id, final_velocity, winning_side, summary.settlements
        )
        if not settled:
            logger.debug("Flash market already resolved elsewhere", market_id=str(market.id))
            return None

        if self._ledger is not None:
            try:
                await self._ledger.close_flash_market(str(market.id), final_velocity, winning_side)
            except Exception as e:
                logger.warning(
                    "Ledger flash market close failed",
                    market_id=str(market.id),
                    error=str(e),
                )

        await self._bus.publish(
            EventType.FLASH_MARKET_RESOLVED,
            {
                "marketId": str(market.id),
                "itemId": market.item_id,
                "winningSide": winning_side.value,
                "finalVelocity": final_velocity,
                "totalPaid": summary.total_paid,
                "positions": len(summary.settlements),
            },
        )
        logger.info(
            "Flash market resolved",
            market_id=str(market.id),
            winning_side=winning_side.value,
            winners_total=summary.winners_total,
            losers_total=summary.losers_total,
            positions=len(summary.settlements),
        )
        return summary
