"""Trend scoring flow."""

from trendline.processing.trend.factors import TrendFactorCollector
from trendline.processing.trend.inference import InferenceClient
from trendline.processing.trend.models import (
    DEFAULT_WEIGHTS,
    MarketContext,
    TrendFactors,
    TrendResult,
    TrendWeights,
)
from trendline.processing.trend.orchestrator import TrendOrchestrator
from trendline.processing.trend.sentiment import SentimentScorer

__all__ = [
    "DEFAULT_WEIGHTS",
    "InferenceClient",
    "MarketContext",
    "SentimentScorer",
    "TrendFactorCollector",
    "TrendFactors",
    "TrendOrchestrator",
    "TrendResult",
    "TrendWeights",
]
