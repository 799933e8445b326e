"""Tests for all API route endpoints."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import httpx
import pytest
from fastapi import FastAPI

from trendline.api.router import api_router
from trendline.config import Settings, get_settings
from trendline.core.circuit_breaker import CircuitBreaker
from trendline.core.constants import MAX_QUOTE_AMOUNT
from trendline.core.dependencies import get_agent_state, get_db
from trendline.core.exceptions import NotFoundError
from trendline.pricing import CurveType, buy_cost, quote_buy
from trendline.processing.flash.models import FlashMarket
from trendline.processing.trend.models import (
    DEFAULT_WEIGHTS,
    TrendFactors,
    TrendHistoryPoint,
    TrendResult,
)
from trendline.storage.request_cache import ResilientCache

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Fixtures: mock models
# ---------------------------------------------------------------------------


def _make_result(**overrides: Any) -> TrendResult:
    defaults: dict[str, Any] = {
        "item_id": "item-1",
        "score": 64.0,
        "factors": TrendFactors(sentiment=0.3),
        "weights": DEFAULT_WEIGHTS,
        "confidence": 0.8,
        "reasoning": "Volume is climbing",
        "timestamp": NOW,
    }
    defaults.update(overrides)
    return TrendResult(**defaults)


def _make_market(**overrides: Any) -> FlashMarket:
    defaults: dict[str, Any] = {
        "item_id": "item-1",
        "start_time": NOW,
        "end_time": NOW + timedelta(seconds=60),
        "initial_velocity": 6.0,
    }
    defaults.update(overrides)
    return FlashMarket(**defaults)


# ---------------------------------------------------------------------------
# Fixtures: mock dependencies
# ---------------------------------------------------------------------------


@dataclass
class _MockAgentState:
    redis: Any = None
    db: Any = None
    settings: Any = None
    bus: Any = None
    breaker: Any = None
    ledger: Any = None
    orchestrator: Any = None
    lifecycle: Any = None
    ledger_cache: Any = None
    scheduler: Any = None
    _background_tasks: list[asyncio.Task[None]] = field(default_factory=list)


@pytest.fixture()
def mock_db() -> AsyncMock:
    db = AsyncMock()
    db.get_latest_trend.return_value = _make_result()
    db.get_trend_history.return_value = [
        TrendHistoryPoint(score=64.0, timestamp=NOW),
        TrendHistoryPoint(score=54.0, timestamp=NOW - timedelta(seconds=5)),
    ]
    db.get_active_flash_markets.return_value = [_make_market()]
    db.get_flash_market.return_value = _make_market()
    return db


@pytest.fixture()
def mock_agent_state() -> _MockAgentState:
    orchestrator = MagicMock()
    orchestrator.update_item = AsyncMock(return_value=_make_result(score=71.0))
    orchestrator.status.return_value = {"scheduled": True, "cycle_running": False}
    scheduler = MagicMock()
    scheduler.running = True
    return _MockAgentState(
        redis=AsyncMock(),
        orchestrator=orchestrator,
        breaker=CircuitBreaker(),
        ledger=AsyncMock(),
        ledger_cache=ResilientCache(name="ledger"),
        scheduler=scheduler,
    )


@pytest.fixture()
def app(mock_db: AsyncMock, mock_agent_state: _MockAgentState) -> FastAPI:
    app = FastAPI()
    app.include_router(api_router, prefix="/api/v1")
    app.dependency_overrides[get_db] = lambda: mock_db
    app.dependency_overrides[get_agent_state] = lambda: mock_agent_state
    return app


@pytest.fixture()
async def client(app: FastAPI):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# ---------------------------------------------------------------------------
# Trend
# ---------------------------------------------------------------------------


class TestTrendRoutes:
    async def test_get_trend(self, client: httpx.AsyncClient, mock_db: AsyncMock) -> None:
        resp = await client.get("/api/v1/trend/item-1")

        assert resp.status_code == 200
        body = resp.json()
        assert body["itemId"] == "item-1"
        assert body["current"]["score"] == 64.0
        assert body["current"]["weights"]["tradingVelocity"] == DEFAULT_WEIGHTS.trading_velocity
        assert body["velocity"] == pytest.approx(2.0)
        assert len(body["history"]) == 2
        mock_db.get_trend_history.assert_awaited_once_with("item-1", limit=20)

    async def test_get_trend_not_found(self, client: httpx.AsyncClient, mock_db: AsyncMock) -> None:
        mock_db.get_latest_trend.return_value = None

        resp = await client.get("/api/v1/trend/missing")

        assert resp.status_code == 404

    async def test_history_limit_validated(self, client: httpx.AsyncClient) -> None:
        resp = await client.get("/api/v1/trend/item-1", params={"history_limit": 1})
        assert resp.status_code == 422

    async def test_refresh(self, client: httpx.AsyncClient, mock_agent_state: _MockAgentState) -> None:
        resp = await client.post("/api/v1/trend/item-1/refresh")

        assert resp.status_code == 200
        assert resp.json()["score"] == 71.0
        mock_agent_state.orchestrator.update_item.assert_awaited_once_with("item-1", force=True)

    async def test_refresh_failure(
        self, client: httpx.AsyncClient, mock_agent_state: _MockAgentState
    ) -> None:
        mock_agent_state.orchestrator.update_item.return_value = None

        resp = await client.post("/api/v1/trend/item-1/refresh")

        assert resp.status_code == 503


# ---------------------------------------------------------------------------
# Flash markets
# ---------------------------------------------------------------------------


class TestFlashMarketRoutes:
    async def test_list_active(self, client: httpx.AsyncClient) -> None:
        resp = await client.get("/api/v1/flash-markets/active")

        assert resp.status_code == 200
        assert resp.json()[0]["item_id"] == "item-1"

    async def test_get_market(self, client: httpx.AsyncClient, mock_db: AsyncMock) -> None:
        market_id = uuid4()

        resp = await client.get(f"/api/v1/flash-markets/{market_id}")

        assert resp.status_code == 200
        mock_db.get_flash_market.assert_awaited_once_with(str(market_id))

    async def test_get_market_not_found(self, client: httpx.AsyncClient, mock_db: AsyncMock) -> None:
        mock_db.get_flash_market.return_value = None

        resp = await client.get(f"/api/v1/flash-markets/{uuid4()}")

        assert resp.status_code == 404

    async def test_bad_market_id(self, client: httpx.AsyncClient) -> None:
        resp = await client.get("/api/v1/flash-markets/not-a-uuid")
        assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Pricing
# ---------------------------------------------------------------------------


class TestPricingRoutes:
    async def test_buy_quote(self, client: httpx.AsyncClient) -> None:
        resp = await client.get(
            "/api/v1/pricing/quote", params={"supply": 0, "amount": 10, "curve": "linear"}
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["cost"] == 10_005_000
        assert body["side"] == "buy"
        assert body["average_price"] == pytest.approx(1_000_500)

    async def test_sell_quote(self, client: httpx.AsyncClient) -> None:
        resp = await client.get(
            "/api/v1/pricing/quote",
            params={"supply": 50, "amount": 20, "curve": "exponential", "side": "sell"},
        )

        assert resp.status_code == 200
        assert resp.json()["cost"] == buy_cost(30, 20, CurveType.EXPONENTIAL)

    async def test_oversell_is_400(self, client: httpx.AsyncClient) -> None:
        resp = await client.get(
            "/api/v1/pricing/quote", params={"supply": 5, "amount": 6, "side": "sell"}
        )

        assert resp.status_code == 400
        assert "only 5 in circulation" in resp.json()["detail"]

    async def test_zero_amount_is_400(self, client: httpx.AsyncClient) -> None:
        resp = await client.get("/api/v1/pricing/quote", params={"supply": 5, "amount": 0})
        assert resp.status_code == 400

    async def test_amount_is_capped(self, client: httpx.AsyncClient) -> None:
        resp = await client.get(
            "/api/v1/pricing/quote",
            params={"supply": 0, "amount": MAX_QUOTE_AMOUNT + 1, "curve": "exponential"},
        )
        assert resp.status_code == 422

    async def test_large_supply_quote_is_exact(self, client: httpx.AsyncClient) -> None:
        resp = await client.get(
            "/api/v1/pricing/quote",
            params={"supply": 10**13, "amount": 1, "curve": "exponential"},
        )

        assert resp.status_code == 200
        assert resp.json()["cost"] == 1_000_000_001_000_000

    async def test_unknown_curve_is_422(self, client: httpx.AsyncClient) -> None:
        resp = await client.get(
            "/api/v1/pricing/quote", params={"supply": 5, "amount": 1, "curve": "quadratic"}
        )
        assert resp.status_code == 422

    async def test_market_quote(
        self, client: httpx.AsyncClient, mock_agent_state: _MockAgentState
    ) -> None:
        mock_agent_state.ledger.quote_trade.return_value = quote_buy(100, 5, CurveType.LOGARITHMIC)

        resp = await client.get("/api/v1/pricing/markets/mkt-1/quote", params={"amount": 5})

        assert resp.status_code == 200
        mock_agent_state.ledger.quote_trade.assert_awaited_once_with("mkt-1", 5, "buy")

    async def test_market_quote_unknown_market(
        self, client: httpx.AsyncClient, mock_agent_state: _MockAgentState
    ) -> None:
        mock_agent_state.ledger.quote_trade.side_effect = NotFoundError("no market")

        resp = await client.get("/api/v1/pricing/markets/nope/quote", params={"amount": 5})

        assert resp.status_code == 404

    async def test_curve_info(self, client: httpx.AsyncClient) -> None:
        resp = await client.get("/api/v1/pricing/curves/exponential")

        assert resp.status_code == 200
        assert resp.json()["name"] == "Exponential"


# ---------------------------------------------------------------------------
# System
# ---------------------------------------------------------------------------


class TestSystemRoutes:
    async def test_status(self, client: httpx.AsyncClient) -> None:
        resp = await client.get("/api/v1/system/status")

        assert resp.status_code == 200
        body = resp.json()
        assert body["orchestrator"]["scheduled"] is True
        assert body["circuit_breaker"]["open"] is False
        assert body["ledger_cache"]["cache_size"] == 0
        assert body["scheduler_running"] is True

    async def test_config(self, client: httpx.AsyncClient) -> None:
        resp = await client.get("/api/v1/system/config")

        assert resp.status_code == 200
        assert "velocity_threshold" in resp.json()

    async def test_config_reads_injected_settings(
        self, app: FastAPI, client: httpx.AsyncClient
    ) -> None:
        app.dependency_overrides[get_settings] = lambda: Settings(  # type: ignore[call-arg]
            _env_file=None, flash_velocity_threshold=9.5, flash_zero_winner_policy="refund"
        )

        body = (await client.get("/api/v1/system/config")).json()

        assert body["velocity_threshold"] == 9.5
        assert body["zero_winner_policy"] == "refund"

    async def test_clear_cache(
        self, client: httpx.AsyncClient, mock_agent_state: _MockAgentState
    ) -> None:
        resp = await client.post("/api/v1/system/cache/clear")

        assert resp.status_code == 200
        mock_agent_state.orchestrator.clear_cache.assert_called_once()
