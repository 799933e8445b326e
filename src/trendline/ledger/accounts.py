"""Decoding of ledger market accounts.

The settlement gateway returns loosely-typed JSON. Everything that crosses
into the service goes through ``decode_market_account`` once, so the rest of
the code works with a validated ``MarketAccount``.
"""

from __future__ import annotations

from typing import Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from trendline.core.exceptions import DecodeError, TrendlineError
from trendline.pricing.curves import CurveType


class MarketAccount(BaseModel):
    """On-ledger state of one item's bonding-curve market."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    address: str = Field(min_length=1)
    current_supply: int = Field(ge=0)
    curve_type: CurveType
    current_price: int = Field(default=0, ge=0)
    reserves: int = Field(default=0, ge=0)
    total_volume: int = Field(default=0, ge=0)
    is_delegated: bool = False

    @field_validator("curve_type", mode="before")
    @classmethod
    def parse_curve_type(cls, v: Any) -> Any:
        if isinstance(v, bool):
            raise ValueError("curveType must be an integer or name")
        if isinstance(v, int):
            try:
                return CurveType.from_ledger(v)
            except TrendlineError as e:
                raise ValueError(e.message) from None
        return v


def decode_market_account(data: Any) -> MarketAccount:
    """Validate a raw account payload. Raises DecodeError on shape mismatch."""
    if not isinstance(data, dict):
        raise DecodeError(f"Market account must be an object, got {type(data).__name__}")
    try:
        return MarketAccount.model_validate(data)
    except pydantic.ValidationError as e:
        raise DecodeError(f"Invalid market account: {e.error_count()} error(s)") from e
