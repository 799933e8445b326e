"""Tests for ledger event decoding, handling and the Redis listener."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import orjson
import pytest

from trendline.core.exceptions import DecodeError
from trendline.ledger.events import (
    FeesClaimed,
    LedgerEventHandler,
    TokensPurchased,
    TokensSold,
    TokensStaked,
    TokensUnstaked,
    decode_ledger_event,
    run_ledger_event_listener,
)

TS = 1_767_225_600

PURCHASE = {
    "type": "TokensPurchased",
    "market": "mkt-1",
    "buyer": "wallet-a",
    "amount": 10,
    "cost": "10005000",
    "newSupply": 110,
    "timestamp": TS,
}


class TestDecodeLedgerEvent:
    """Tests for decode_ledger_event."""

    def test_purchase_from_bytes(self) -> None:
        event = decode_ledger_event(orjson.dumps(PURCHASE))

        assert isinstance(event, TokensPurchased)
        assert event.cost == 10_005_000
        assert event.new_supply == 110
        assert event.timestamp == datetime.fromtimestamp(TS, UTC)

    def test_all_types(self) -> None:
        base = {"market": "m", "amount": 1}
        assert isinstance(
            decode_ledger_event({**base, "type": "TokensSold", "seller": "s", "refund": 5, "newSupply": 0}),
            TokensSold,
        )
        assert isinstance(
            decode_ledger_event({**base, "type": "TokensStaked", "author": "a", "totalStaked": 3}),
            TokensStaked,
        )
        assert isinstance(
            decode_ledger_event({**base, "type": "TokensUnstaked", "author": "a", "totalStaked": 0}),
            TokensUnstaked,
        )
        assert isinstance(decode_ledger_event({**base, "type": "FeesClaimed", "author": "a"}), FeesClaimed)

    def test_iso_timestamp(self) -> None:
        event = decode_ledger_event({**PURCHASE, "timestamp": "2026-01-01T00:00:00+00:00"})
        assert event.timestamp == datetime(2026, 1, 1, tzinfo=UTC)

    @pytest.mark.parametrize(
        "raw",
        [
            b"not json",
            b"[1, 2]",
            {**PURCHASE, "type": "Mystery"},
            {**PURCHASE, "amount": -1},
            {**PURCHASE, "amount": True},
            {**PURCHASE, "buyer": ""},
            {**PURCHASE, "timestamp": "yesterday"},
            {k: v for k, v in PURCHASE.items() if k != "newSupply"},
        ],
    )
    def test_malformed(self, raw: object) -> None:
        with pytest.raises(DecodeError):
            decode_ledger_event(raw)  # type: ignore[arg-type]


class TestLedgerEventHandler:
    """Tests for LedgerEventHandler.handle."""

    @pytest.mark.asyncio
    async def test_purchase_records_trade_and_marks_item(self) -> None:
        db = AsyncMock()
        db.get_item_id_by_market.return_value = "item-1"
        orchestrator = MagicMock()
        event = decode_ledger_event(PURCHASE)

        await LedgerEventHandler(db, orchestrator).handle(event)

        db.record_trade.assert_awaited_once_with(
            "item-1", "wallet-a", "buy", 10, 10_005_000, 110, event.timestamp
        )
        db.refresh_item_statistics.assert_awaited_once_with("item-1")
        orchestrator.mark_for_update.assert_called_once_with("item-1")

    @pytest.mark.asyncio
    async def test_sale_records_sell(self) -> None:
        db = AsyncMock()
        db.get_item_id_by_market.return_value = "item-1"
        event = decode_ledger_event(
            {"type": "TokensSold", "market": "m", "seller": "s", "amount": 2, "refund": 9, "newSupply": 8}
        )

        await LedgerEventHandler(db).handle(event)

        assert db.record_trade.await_args.args[2] == "sell"

    @pytest.mark.asyncio
    async def test_staking_and_fees(self) -> None:
        db = AsyncMock()
        db.get_item_id_by_market.return_value = "item-1"
        handler = LedgerEventHandler(db)

        await handler.handle(
            decode_ledger_event({"type": "TokensStaked", "market": "m", "author": "a", "amount": 5, "totalStaked": 50})
        )
        await handler.handle(
            decode_ledger_event({"type": "FeesClaimed", "market": "m", "author": "a", "amount": 7})
        )

        db.update_staking.assert_awaited_once_with("item-1", 50)
        db.record_fees_claimed.assert_awaited_once_with("item-1", 7)
        db.record_trade.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_market_ignored(self) -> None:
        db = AsyncMock()
        db.get_item_id_by_market.return_value = None

        await LedgerEventHandler(db).handle(decode_ledger_event(PURCHASE))

        db.record_trade.assert_not_awaited()


class TestRunLedgerEventListener:
    """Tests for the pub/sub loop."""

    @pytest.mark.asyncio
    async def test_dispatches_and_stops(self) -> None:
        shutdown = asyncio.Event()
        messages = [
            {"type": "message", "data": b"garbage"},
            {"type": "message", "data": orjson.dumps(PURCHASE)},
            None,
        ]

        async def get_message(**_: object) -> dict[str, object] | None:
            if not messages:
                shutdown.set()
                return None
            return messages.pop(0)

        pubsub = MagicMock()
        pubsub.subscribe = AsyncMock()
        pubsub.unsubscribe = AsyncMock()
        pubsub.aclose = AsyncMock()
        pubsub.get_message = get_message
        redis = MagicMock()
        redis.pubsub.return_value = pubsub
        handler = AsyncMock()

        await run_ledger_event_listener(redis, "ledger:events", handler, shutdown)

        pubsub.subscribe.assert_awaited_once_with("ledger:events")
        handler.handle.assert_awaited_once()
        assert isinstance(handler.handle.await_args.args[0], TokensPurchased)
        pubsub.unsubscribe.assert_awaited_once_with("ledger:events")
        pubsub.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_handler_failure_does_not_stop_loop(self) -> None:
        shutdown = asyncio.Event()
        messages = [
            {"type": "message", "data": orjson.dumps(PURCHASE)},
            {"type": "message", "data": orjson.dumps(PURCHASE)},
        ]

        async def get_message(**_: object) -> dict[str, object] | None:
            if not messages:
                shutdown.set()
                return None
            return messages.pop(0)

        pubsub = MagicMock()
        pubsub.subscribe = AsyncMock()
        pubsub.unsubscribe = AsyncMock()
        pubsub.aclose = AsyncMock()
        pubsub.get_message = get_message
        redis = MagicMock()
        redis.pubsub.return_value = pubsub
        handler = AsyncMock()
        handler.handle.side_effect = RuntimeError("db down")

        await run_ledger_event_listener(redis, "ledger:events", handler, shutdown)

        assert handler.handle.await_count == 2
