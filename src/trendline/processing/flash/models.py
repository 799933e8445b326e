"""Data models for flash markets."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from trendline.processing.trend.models import TrendWeights


class Direction(StrEnum):
    UP = "up"
    DOWN = "down"


class ZeroWinnerPolicy(StrEnum):
    """Settlement when nobody backed the winning side."""

    HOUSE = "house"  # every payout 0
    REFUND = "refund"  # every stake returned


class FlashMarket(BaseModel):
    """A short-lived up/down market opened on a trend spike.

    Terminal once ``is_resolved`` is set.
    """

    id: UUID = Field(default_factory=uuid4)
    item_id: str
    snapshot_weights: TrendWeights | None = None
    start_time: datetime
    end_time: datetime
    initial_velocity: float
    final_velocity: float | None = None
    winning_side: Direction | None = None
    is_active: bool = True
    is_resolved: bool = False

    # Maintained by the position-taking side; read-only here
    total_up_amount: float = 0.0
    total_down_amount: float = 0.0
    participant_count: int = 0


class FlashPosition(BaseModel):
    id: UUID
    market_id: UUID
    user_id: str
    direction: Direction
    stake_amount: float = Field(ge=0.0)
    payout: float | None = None
    profit_loss: float | None = None
    is_resolved: bool = False


class PositionSettlement(BaseModel):
    position_id: UUID
    user_id: str
    direction: Direction
    stake_amount: float
    payout: float
    profit_loss: float
    is_winner: bool


class PayoutSummary(BaseModel):
    winning_side: Direction
    winners_total: float
    losers_total: float
    total_paid: float
    settlements: list[PositionSettlement] = Field(default_factory=list)
