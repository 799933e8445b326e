"""Bonding-curve pricing.

Pure functions over integer base units (lamports). Three curve families are
supported and every unit price is floored, since a lamport cannot be split.
Selling ``a`` tokens at supply ``s`` refunds exactly what buying ``a`` tokens
at supply ``s - a`` costs.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Literal

import numpy as np

from trendline.core.constants import (
    CURVE_BASE_PRICE,
    CURVE_EXPONENTIAL_SCALE_UNIT,
    CURVE_LINEAR_SLOPE,
    CURVE_LOG_SCALE,
)
from trendline.core.exceptions import InsufficientSupplyError, ValidationError


class CurveType(StrEnum):
    LINEAR = "linear"
    EXPONENTIAL = "exponential"
    LOGARITHMIC = "logarithmic"

    @classmethod
    def from_ledger(cls, value: int) -> CurveType:
        """Map the ledger's numeric curve discriminant."""
        mapping = {0: cls.LINEAR, 1: cls.EXPONENTIAL, 2: cls.LOGARITHMIC}
        try:
            return mapping[value]
        except KeyError:
            raise ValidationError(f"Unknown curve type discriminant: {value}") from None


@dataclass(frozen=True)
class CurveParams:
    base_price: int = CURVE_BASE_PRICE
    slope: int = CURVE_LINEAR_SLOPE
    scale_unit: int = CURVE_EXPONENTIAL_SCALE_UNIT
    log_scale: int = CURVE_LOG_SCALE


DEFAULT_PARAMS = CurveParams()


@dataclass(frozen=True)
class CurveQuote:
    """Cost (or refund) of a trade plus the price range it walks."""

    side: Literal["buy", "sell"]
    amount: int
    cost: int
    start_price: int
    end_price: int

    @property
    def average_price(self) -> float:
        return self.cost / self.amount


def _coerce_curve(curve: CurveType | str) -> CurveType:
    try:
        return CurveType(curve)
    except ValueError:
        raise ValidationError(f"Unknown curve type: {curve}") from None


def _check_supply(supply: int) -> None:
    if supply < 0:
        raise ValidationError(f"Supply must be non-negative, got {supply}")


def _check_amount(amount: int) -> None:
    if amount <= 0:
        raise ValidationError(f"Amount must be positive, got {amount}")


def price_at_supply(
    supply: int, curve: CurveType | str, params: CurveParams = DEFAULT_PARAMS
) -> int:
    """Spot price of the next unit at ``supply``."""
    _check_supply(supply)
    curve = _coerce_curve(curve)
    if curve is CurveType.LINEAR:
        return params.base_price + supply * params.slope
    if curve is CurveType.EXPONENTIAL:
        return params.base_price * (params.scale_unit + supply) // params.scale_unit
    return int(np.floor(params.base_price + params.log_scale * np.log2(supply + 1)))


def _exponential_sum(supply: int, amount: int, params: CurveParams) -> int:
    # Python ints throughout; u64 ledger supplies overflow int64 here
    if params.base_price % params.scale_unit == 0:
        per_unit = params.base_price // params.scale_unit
        first = params.scale_unit + supply
        return per_unit * (amount * first + amount * (amount - 1) // 2)
    return sum(
        params.base_price * (params.scale_unit + supply + i) // params.scale_unit
        for i in range(amount)
    )


def buy_cost(
    supply: int, amount: int, curve: CurveType | str, params: CurveParams = DEFAULT_PARAMS
) -> int:
    """Cost of minting ``amount`` units starting from ``supply``."""
    _check_supply(supply)
    _check_amount(amount)
    curve = _coerce_curve(curve)

    if curve is CurveType.LINEAR:
        start = params.base_price + supply * params.slope
        end = params.base_price + (supply + amount) * params.slope
        return (start + end) * amount // 2

    if curve is CurveType.EXPONENTIAL:
        return _exponential_sum(supply, amount, params)

    steps = np.arange(supply + 1, supply + amount + 1, dtype=np.float64)
    prices = np.floor(params.base_price + params.log_scale * np.log2(steps))
    return int(prices.astype(np.int64).sum())


def sell_refund(
    supply: int, amount: int, curve: CurveType | str, params: CurveParams = DEFAULT_PARAMS
) -> int:
    """Refund for burning ``amount`` units out of ``supply``."""
    _check_supply(supply)
    _check_amount(amount)
    if amount > supply:
        raise InsufficientSupplyError(f"Cannot sell {amount} tokens, only {supply} in circulation")
    return buy_cost(supply - amount, amount, curve, params)


def total_value(
    supply: int, curve: CurveType | str, params: CurveParams = DEFAULT_PARAMS
) -> int:
    """Accumulated cost of the whole circulating supply, minted from zero."""
    _check_supply(supply)
    if supply == 0:
        return 0
    return buy_cost(0, supply, curve, params)


def quote_buy(
    supply: int, amount: int, curve: CurveType | str, params: CurveParams = DEFAULT_PARAMS
) -> CurveQuote:
    cost = buy_cost(supply, amount, curve, params)
    return CurveQuote(
        side="buy",
        amount=amount,
        cost=cost,
        start_price=price_at_supply(supply, curve, params),
        end_price=price_at_supply(supply + amount, curve, params),
    )


def quote_sell(
    supply: int, amount: int, curve: CurveType | str, params: CurveParams = DEFAULT_PARAMS
) -> CurveQuote:
    refund = sell_refund(supply, amount, curve, params)
    return CurveQuote(
        side="sell",
        amount=amount,
        cost=refund,
        start_price=price_at_supply(supply, curve, params),
        end_price=price_at_supply(supply - amount, curve, params),
    )


_CURVE_INFO: dict[CurveType, dict[str, object]] = {
    CurveType.LINEAR: {
        "name": "Linear",
        "description": "Price grows by a fixed slope per token",
        "formula": "price = base + supply * slope",
        "characteristics": ["Predictable growth", "Steady appreciation"],
    },
    CurveType.EXPONENTIAL: {
        "name": "Exponential",
        "description": "Price grows proportionally to supply",
        "formula": "price = base * (scale_unit + supply) / scale_unit",
        "characteristics": ["Rewards early buyers", "Steep at high supply"],
    },
    CurveType.LOGARITHMIC: {
        "name": "Logarithmic",
        "description": "Price grows quickly at first, then flattens",
        "formula": "price = base + log_scale * log2(supply + 1)",
        "characteristics": ["Fast early discovery", "Stable at scale"],
    },
}


def curve_info(curve: CurveType | str) -> dict[str, object]:
    """Human-readable description of a curve family."""
    curve = _coerce_curve(curve)
    return {"type": curve.value, **_CURVE_INFO[curve]}
