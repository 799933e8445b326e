"""Flash market flow."""

from trendline.processing.flash.detector import VelocitySpikeDetector, compute_velocity
from trendline.processing.flash.lifecycle import FlashMarketLifecycle
from trendline.processing.flash.models import (
    Direction,
    FlashMarket,
    FlashPosition,
    PayoutSummary,
    ZeroWinnerPolicy,
)
from trendline.processing.flash.payouts import calculate_payouts

__all__ = [
    "Direction",
    "FlashMarket",
    "FlashMarketLifecycle",
    "FlashPosition",
    "PayoutSummary",
    "VelocitySpikeDetector",
    "ZeroWinnerPolicy",
    "calculate_payouts",
    "compute_velocity",
]
