"""Trend factor collection.

Turns an item's trailing activity into the seven normalized signals the
scorer weights: sentiment, trading velocity, volume spike, price momentum,
social activity, holder momentum, and cross-market correlation.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import TYPE_CHECKING

import numpy as np

from trendline.core.constants import (
    ACTIVITY_WINDOW_MINUTES,
    CROSS_MARKET_PEERS,
    HOLDER_MOMENTUM_DIVISOR,
    VOLUME_BASELINE_MINUTES,
)
from trendline.core.exceptions import ItemNotFoundError
from trendline.core.logging import get_logger
from trendline.processing.trend.models import ItemActivity, TrendFactors

if TYPE_CHECKING:
    from trendline.processing.trend.sentiment import SentimentScorer
    from trendline.storage.database import Database

logger = get_logger(__name__)


def volume_spike(buckets: Sequence[float]) -> float:
    """Last hour's volume relative to the 24h per-minute average.

    ``buckets`` are per-minute volumes, most recent first. 0.0 when the
    baseline average is zero.
    """
    if not buckets:
        return 0.0
    baseline = np.asarray(buckets[:VOLUME_BASELINE_MINUTES], dtype=np.float64)
    average = float(baseline.mean())
    if average == 0:
        return 0.0
    recent = float(np.sum(baseline[:ACTIVITY_WINDOW_MINUTES]))
    return (recent - average) / average


def correlation(a: Sequence[float], b: Sequence[float]) -> float:
    """Pearson-style correlation of two volume series.

    Means are taken over each full series; products are summed over the
    overlapping prefix. 0.0 if either side is flat or empty.
    """
    n = min(len(a), len(b))
    if n == 0:
        return 0.0
    x = np.asarray(a, dtype=np.float64)
    y = np.asarray(b, dtype=np.float64)
    dx = x[:n] - x.mean()
    dy = y[:n] - y.mean()
    denominator = float(np.sqrt(np.sum(dx * dx) * np.sum(dy * dy)))
    if denominator == 0:
        return 0.0
    return float(np.clip(np.sum(dx * dy) / denominator, -1.0, 1.0))


def mean_correlation(series: Sequence[float], peers: Sequence[Sequence[float]]) -> float:
    if not peers:
        return 0.0
    return float(np.mean([correlation(series, peer) for peer in peers]))


def activity_factors(activity: ItemActivity, sentiment: float, cross_market_corr: float) -> TrendFactors:
    """Pure factor arithmetic over an activity snapshot."""
    return TrendFactors(
        sentiment=max(-1.0, min(1.0, sentiment)),
        trading_velocity=activity.trade_count_1h / ACTIVITY_WINDOW_MINUTES,
        volume_spike=volume_spike(activity.volume_buckets),
        price_momentum=activity.price_change_24h / 100,
        social_activity=activity.comment_count_1h + activity.like_count_1h,
        holder_momentum=activity.holder_count / HOLDER_MOMENTUM_DIVISOR,
        cross_market_corr=max(-1.0, min(1.0, cross_market_corr)),
    )


class TrendFactorCollector:
    """Reads item activity from the store and computes TrendFactors."""

    def __init__(self, db: Database, sentiment: SentimentScorer) -> None:
        self._db = db
        self._sentiment = sentiment

    async def collect(self, item_id: str) -> TrendFactors:
        activity = await self._db.get_item_activity(item_id)
        if activity is None:
            raise ItemNotFoundError(f"Item {item_id} not found")

        sentiment, cross = await asyncio.gather(
            self._sentiment.score(activity.headline, activity.content),
            self._cross_market_corr(item_id),
        )
        factors = activity_factors(activity, sentiment, cross)
        logger.debug("Trend factors collected", item_id=item_id, **factors.model_dump())
        return factors

    async def _cross_market_corr(self, item_id: str) -> float:
        try:
            series = await self._db.get_volume_series(item_id, ACTIVITY_WINDOW_MINUTES)
            peers = await self._db.get_peer_volume_series(
                item_id, CROSS_MARKET_PEERS, ACTIVITY_WINDOW_MINUTES
            )
        except Exception as e:
            logger.warning("Cross-market correlation failed", item_id=item_id, error=str(e))
            return 0.0
        return mean_correlation(series, peers)
