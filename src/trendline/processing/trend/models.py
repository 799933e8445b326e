"""Data models for trend scoring.

Factor and weight models use camelCase aliases because they travel to the
inference service and out on notifications in that shape.
"""

from __future__ import annotations

import hashlib
from datetime import datetime
from enum import StrEnum
from typing import Literal

import orjson
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

FACTOR_KEYS = (
    "sentiment",
    "trading_velocity",
    "volume_spike",
    "price_momentum",
    "social_activity",
    "holder_momentum",
    "cross_market_corr",
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TrendFactors(_CamelModel):
    """Raw activity signals for one item over the trailing window."""

    sentiment: float = Field(default=0.0, ge=-1.0, le=1.0)
    trading_velocity: float = Field(default=0.0, ge=0.0)
    volume_spike: float = 0.0
    price_momentum: float = 0.0
    social_activity: float = Field(default=0.0, ge=0.0)
    holder_momentum: float = Field(default=0.0, ge=0.0)
    cross_market_corr: float = Field(default=0.0, ge=-1.0, le=1.0)

    def weighted_sum(self, weights: TrendWeights) -> float:
        return sum(getattr(self, k) * getattr(weights, k) for k in FACTOR_KEYS)

    def factors_hash(self) -> str:
        """SHA-256 of the canonical (sorted-key, camelCase) JSON encoding."""
        payload = orjson.dumps(self.model_dump(by_alias=True), option=orjson.OPT_SORT_KEYS)
        return hashlib.sha256(payload).hexdigest()


class TrendWeights(_CamelModel):
    """Per-factor weights; non-negative and summing to 1."""

    sentiment: float = Field(ge=0.0)
    trading_velocity: float = Field(ge=0.0)
    volume_spike: float = Field(ge=0.0)
    price_momentum: float = Field(ge=0.0)
    social_activity: float = Field(ge=0.0)
    holder_momentum: float = Field(ge=0.0)
    cross_market_corr: float = Field(ge=0.0)

    @property
    def total(self) -> float:
        return sum(getattr(self, k) for k in FACTOR_KEYS)

    def normalized(self) -> TrendWeights:
        """Rescale so the weights sum to 1. Raises ValueError if they sum to 0."""
        total = self.total
        if total <= 0:
            raise ValueError("Weights sum to zero")
        if abs(total - 1.0) < 1e-9:
            return self
        return TrendWeights(**{k: getattr(self, k) / total for k in FACTOR_KEYS})


DEFAULT_WEIGHTS = TrendWeights(
    sentiment=0.25,
    trading_velocity=0.20,
    volume_spike=0.20,
    price_momentum=0.15,
    social_activity=0.10,
    holder_momentum=0.05,
    cross_market_corr=0.05,
)


class TrendResult(_CamelModel):
    """Output of one scoring pass for one item."""

    item_id: str
    score: float = Field(ge=0.0, le=100.0)
    factors: TrendFactors
    weights: TrendWeights
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str
    timestamp: datetime
    provider: Literal["inference", "fallback"] = "inference"


class TrendHistoryPoint(BaseModel):
    score: float
    timestamp: datetime


class Priority(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"high": 0, "medium": 1, "low": 2}[self.value]


class TrendCandidate(BaseModel):
    """An item selected for scoring this cycle."""

    item_id: str
    volume_24h: float = 0.0
    last_trend_update: datetime | None = None
    priority: Priority = Priority.LOW


class MarketContext(BaseModel):
    """Ambient market conditions passed along with the factors."""

    timestamp: datetime
    volatility: Literal["low", "medium", "high"] = "medium"
    overall_sentiment: Literal["bearish", "neutral", "bullish"] = "neutral"
    active_markets: int = 0


class ItemActivity(BaseModel):
    """Windowed activity read for one item."""

    item_id: str
    headline: str = ""
    content: str = ""
    trade_count_1h: int = 0
    volume_buckets: list[float] = Field(
        default_factory=list,
        description="Per-minute volume over 24h, most recent first",
    )
    price_change_24h: float = 0.0
    comment_count_1h: int = 0
    like_count_1h: int = 0
    holder_count: int = 0
