"""Bonding-curve quote endpoints."""

from dataclasses import asdict
from typing import Literal

from fastapi import APIRouter, HTTPException, Query

from trendline.core.constants import MAX_QUOTE_AMOUNT
from trendline.core.dependencies import LedgerDep
from trendline.core.exceptions import NotFoundError, ValidationError
from trendline.pricing.curves import CurveQuote, CurveType, curve_info, quote_buy, quote_sell

router = APIRouter()


def _quote_body(quote: CurveQuote) -> dict[str, object]:
    return {**asdict(quote), "average_price": quote.average_price}


@router.get("/quote")
async def quote(
    supply: int = Query(..., ge=0),
    amount: int = Query(..., le=MAX_QUOTE_AMOUNT),
    curve: CurveType = Query(CurveType.LINEAR),
    side: Literal["buy", "sell"] = Query("buy"),
) -> dict[str, object]:
    try:
        result = quote_buy(supply, amount, curve) if side == "buy" else quote_sell(supply, amount, curve)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    return _quote_body(result)


@router.get("/markets/{address}/quote")
async def market_quote(
    address: str,
    ledger: LedgerDep,
    amount: int = Query(..., le=MAX_QUOTE_AMOUNT),
    side: Literal["buy", "sell"] = Query("buy"),
) -> dict[str, object]:
    try:
        result = await ledger.quote_trade(address, amount, side)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    return _quote_body(result)


@router.get("/curves/{curve}")
async def describe_curve(curve: CurveType) -> dict[str, object]:
    return curve_info(curve)
