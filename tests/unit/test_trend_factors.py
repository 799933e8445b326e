"""Tests for trend models and factor collection."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from trendline.core.exceptions import ItemNotFoundError
from trendline.processing.trend.factors import (
    TrendFactorCollector,
    activity_factors,
    correlation,
    mean_correlation,
    volume_spike,
)
from trendline.processing.trend.models import (
    DEFAULT_WEIGHTS,
    ItemActivity,
    TrendFactors,
    TrendWeights,
)


class TestTrendWeights:
    def test_default_weights_sum_to_one(self) -> None:
        assert DEFAULT_WEIGHTS.total == pytest.approx(1.0)

    def test_normalized_rescales(self) -> None:
        weights = TrendWeights(
            sentiment=2, trading_velocity=2, volume_spike=2, price_momentum=2,
            social_activity=1, holder_momentum=1, cross_market_corr=0,
        )

        normalized = weights.normalized()

        assert normalized.total == pytest.approx(1.0, abs=1e-6)
        assert normalized.sentiment == pytest.approx(0.2)

    def test_normalized_rejects_zero_sum(self) -> None:
        zero = TrendWeights(
            sentiment=0, trading_velocity=0, volume_spike=0, price_momentum=0,
            social_activity=0, holder_momentum=0, cross_market_corr=0,
        )
        with pytest.raises(ValueError, match="zero"):
            zero.normalized()

    def test_camel_aliases(self) -> None:
        dumped = DEFAULT_WEIGHTS.model_dump(by_alias=True)
        assert "tradingVelocity" in dumped
        assert TrendWeights.model_validate(dumped) == DEFAULT_WEIGHTS


class TestTrendFactors:
    def test_weighted_sum(self) -> None:
        factors = TrendFactors(sentiment=1.0, trading_velocity=1.0)
        assert factors.weighted_sum(DEFAULT_WEIGHTS) == pytest.approx(0.45)

    def test_factors_hash_is_stable(self) -> None:
        a = TrendFactors(sentiment=0.5, volume_spike=1.2)
        b = TrendFactors(volume_spike=1.2, sentiment=0.5)

        assert a.factors_hash() == b.factors_hash()
        assert len(a.factors_hash()) == 64
        assert a.factors_hash() != TrendFactors().factors_hash()


class TestFactorMath:
    """Tests for the pure factor functions."""

    def test_volume_spike_empty(self) -> None:
        assert volume_spike([]) == 0.0

    def test_volume_spike_flat_zero(self) -> None:
        assert volume_spike([0.0] * 100) == 0.0

    def test_volume_spike_recent_vs_average(self) -> None:
        assert volume_spike([1.0] * 10) == pytest.approx(9.0)

    def test_correlation_perfect(self) -> None:
        assert correlation([1, 2, 3], [2, 4, 6]) == pytest.approx(1.0)
        assert correlation([1, 2, 3], [3, 2, 1]) == pytest.approx(-1.0)

    def test_correlation_flat_or_empty(self) -> None:
        assert correlation([1, 1, 1], [1, 2, 3]) == 0.0
        assert correlation([], [1, 2]) == 0.0

    def test_mean_correlation_no_peers(self) -> None:
        assert mean_correlation([1, 2, 3], []) == 0.0

    def test_mean_correlation_averages(self) -> None:
        assert mean_correlation([1, 2, 3], [[1, 2, 3], [3, 2, 1]]) == pytest.approx(0.0)

    def test_activity_factors(self) -> None:
        activity = ItemActivity(
            item_id="item-1",
            trade_count_1h=30,
            volume_buckets=[1.0] * 10,
            price_change_24h=12.5,
            comment_count_1h=4,
            like_count_1h=6,
            holder_count=25,
        )

        factors = activity_factors(activity, sentiment=1.7, cross_market_corr=-0.4)

        assert factors.sentiment == 1.0
        assert factors.trading_velocity == pytest.approx(0.5)
        assert factors.volume_spike == pytest.approx(9.0)
        assert factors.price_momentum == pytest.approx(0.125)
        assert factors.social_activity == 10
        assert factors.holder_momentum == pytest.approx(2.5)
        assert factors.cross_market_corr == pytest.approx(-0.4)


class TestTrendFactorCollector:
    """Tests for TrendFactorCollector.collect."""

    @pytest.mark.asyncio
    async def test_collect(self) -> None:
        db = AsyncMock()
        db.get_item_activity.return_value = ItemActivity(
            item_id="item-1", headline="Big news", trade_count_1h=6
        )
        db.get_volume_series.return_value = [1.0, 2.0, 3.0]
        db.get_peer_volume_series.return_value = [[2.0, 4.0, 6.0]]
        sentiment = AsyncMock()
        sentiment.score.return_value = 0.6

        factors = await TrendFactorCollector(db, sentiment).collect("item-1")

        assert factors.sentiment == pytest.approx(0.6)
        assert factors.trading_velocity == pytest.approx(0.1)
        assert factors.cross_market_corr == pytest.approx(1.0)
        sentiment.score.assert_awaited_once_with("Big news", "")

    @pytest.mark.asyncio
    async def test_missing_item(self) -> None:
        db = AsyncMock()
        db.get_item_activity.return_value = None

        with pytest.raises(ItemNotFoundError):
            await TrendFactorCollector(db, AsyncMock()).collect("nope")

    @pytest.mark.asyncio
    async def test_cross_market_failure_scores_zero(self) -> None:
        db = AsyncMock()
        db.get_item_activity.return_value = ItemActivity(item_id="item-1")
        db.get_volume_series.side_effect = RuntimeError("db down")
        sentiment = AsyncMock()
        sentiment.score.return_value = 0.0

        factors = await TrendFactorCollector(db, sentiment).collect("item-1")

        assert factors.cross_market_corr == 0.0
