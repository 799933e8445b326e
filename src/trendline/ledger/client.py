"""Settlement gateway client.

Thin httpx client over the gateway that fronts the on-ledger program:
- GET  /markets/{address}           market account (bonding-curve state)
- POST /flash-markets               open a flash market
- POST /flash-markets/{id}/close    settle a flash market
- POST /trend-scores                publish a trend score with its factors hash
"""

from __future__ import annotations

from typing import Any, Literal

import httpx

from trendline.core.constants import (
    MARKET_ACCOUNT_CACHE_TTL_SECONDS,
    TREND_SCORE_LEDGER_SCALE,
    VELOCITY_LEDGER_SCALE,
)
from trendline.core.exceptions import LedgerError, NotFoundError, RateLimitedError
from trendline.core.logging import get_logger
from trendline.core.retry import RetryPolicy
from trendline.ledger.accounts import MarketAccount, decode_market_account
from trendline.pricing.curves import CurveQuote, quote_buy, quote_sell
from trendline.processing.flash.models import Direction, FlashMarket
from trendline.processing.trend.models import TrendResult
from trendline.storage.request_cache import ResilientCache, create_cache_key

logger = get_logger(__name__)


class LedgerClient:
    """Client for the settlement gateway.

    Usage:
        client = LedgerClient("http://gateway:8899", cache=ResilientCache("ledger"))
        account = await client.get_market_account(address)
        await client.close()
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 10.0,
        cache: ResilientCache | None = None,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._cache = cache or ResilientCache(name="ledger")
        self._retry = retry_policy or RetryPolicy()
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            headers = {"Accept": "application/json"}
            if self._api_key:
                headers["Authorization"] = f"Bearer {self._api_key}"
            self._http_client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers=headers,
                transport=self._transport,
            )
        return self._http_client

    async def _request(self, method: str, path: str, json: Any = None) -> Any:
        client = self._get_http_client()
        try:
            response = await client.request(method, path, json=json)
        except httpx.HTTPError as e:
            raise LedgerError(f"Ledger gateway unreachable: {e}") from e

        if response.status_code == 429:
            raise RateLimitedError(f"Ledger gateway rate limited {method} {path}")
        if response.status_code == 404:
            raise NotFoundError(f"Ledger resource not found: {path}")
        if response.is_error:
            raise LedgerError(f"Ledger gateway error {response.status_code} on {method} {path}")
        if not response.content:
            return None
        return response.json()

    # ─────────────────────────────────────────────────────────────
    # Market accounts
    # ─────────────────────────────────────────────────────────────

    async def _fetch_market_account(self, address: str) -> MarketAccount:
        data = await self._request("GET", f"/markets/{address}")
        return decode_market_account(data)

    async def get_market_account(self, address: str) -> MarketAccount:
        """Market account for ``address``; cached, coalesced and retried on 429."""
        return await self._cache.get(
            create_cache_key("account", address),
            lambda: self._fetch_market_account(address),
            ttl=MARKET_ACCOUNT_CACHE_TTL_SECONDS,
        )

    async def quote_trade(
        self, address: str, amount: int, side: Literal["buy", "sell"]
    ) -> CurveQuote:
        """Price a trade against the market's current on-ledger supply."""
        account = await self.get_market_account(address)
        if side == "buy":
            return quote_buy(account.current_supply, amount, account.curve_type)
        return quote_sell(account.current_supply, amount, account.curve_type)

    # ─────────────────────────────────────────────────────────────
    # Flash markets
    # ─────────────────────────────────────────────────────────────

    async def create_flash_market(self, market: FlashMarket) -> str | None:
        """Submit the create instruction. Returns the gateway's signature, if any."""
        body = {
            "marketId": str(market.id),
            "itemId": market.item_id,
            "initialVelocity": round(market.initial_velocity * VELOCITY_LEDGER_SCALE),
            "durationSeconds": int((market.end_time - market.start_time).total_seconds()),
        }
        data = await self._retry.run(lambda: self._request("POST", "/flash-markets", body))
        signature = data.get("signature") if isinstance(data, dict) else None
        logger.debug("Flash market submitted to ledger", market_id=str(market.id), signature=signature)
        return signature

    async def close_flash_market(
        self, market_id: str, final_velocity: float, winning_side: Direction
    ) -> str | None:
        body = {
            "finalVelocity": round(final_velocity * VELOCITY_LEDGER_SCALE),
            "winningSide": winning_side.value,
        }
        data = await self._retry.run(
            lambda: self._request("POST", f"/flash-markets/{market_id}/close", body)
        )
        return data.get("signature") if isinstance(data, dict) else None

    # ─────────────────────────────────────────────────────────────
    # Trend scores
    # ─────────────────────────────────────────────────────────────

    async def push_trend_score(self, result: TrendResult) -> str | None:
        body = {
            "itemId": result.item_id,
            "score": round(result.score * TREND_SCORE_LEDGER_SCALE),
            "factorsHash": result.factors.factors_hash(),
            "timestamp": int(result.timestamp.timestamp()),
        }
        data = await self._retry.run(lambda: self._request("POST", "/trend-scores", body))
        return data.get("signature") if isinstance(data, dict) else None

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
