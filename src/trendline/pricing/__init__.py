"""Bonding-curve pricing engine."""

from trendline.pricing.curves import (
    CurveParams,
    CurveQuote,
    CurveType,
    buy_cost,
    curve_info,
    price_at_supply,
    quote_buy,
    quote_sell,
    sell_refund,
    total_value,
)

__all__ = [
    "CurveParams",
    "CurveQuote",
    "CurveType",
    "buy_cost",
    "curve_info",
    "price_at_supply",
    "quote_buy",
    "quote_sell",
    "sell_refund",
    "total_value",
]
