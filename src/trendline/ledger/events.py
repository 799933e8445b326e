"""Ledger domain events: decoding, handling and the Redis listener.

The settlement gateway publishes one JSON object per program event on a
Redis channel, tagged by ``type``:

    TokensPurchased  {market, buyer, amount, cost, newSupply}
    TokensSold       {market, seller, amount, refund, newSupply}
    TokensStaked     {market, author, amount, totalStaked}
    TokensUnstaked   {market, author, amount, totalStaked}
    FeesClaimed      {market, author, amount}

Trades feed the statistics the trend factors read, and mark the item for a
fresh trend score on the next cycle.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import orjson

from trendline.core.exceptions import DecodeError
from trendline.core.logging import get_logger

if TYPE_CHECKING:
    from redis.asyncio import Redis

    from trendline.processing.trend.orchestrator import TrendOrchestrator
    from trendline.storage.database import Database

logger = get_logger(__name__)


@dataclass(frozen=True)
class TokensPurchased:
    market: str
    buyer: str
    amount: int
    cost: int
    new_supply: int
    timestamp: datetime


@dataclass(frozen=True)
class TokensSold:
    market: str
    seller: str
    amount: int
    refund: int
    new_supply: int
    timestamp: datetime


@dataclass(frozen=True)
class TokensStaked:
    market: str
    author: str
    amount: int
    total_staked: int
    timestamp: datetime


@dataclass(frozen=True)
class TokensUnstaked:
    market: str
    author: str
    amount: int
    total_staked: int
    timestamp: datetime


@dataclass(frozen=True)
class FeesClaimed:
    market: str
    author: str
    amount: int
    timestamp: datetime


LedgerEvent = TokensPurchased | TokensSold | TokensStaked | TokensUnstaked | FeesClaimed


def _str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise DecodeError(f"Field '{key}' must be a non-empty string")
    return value


def _int(data: dict[str, Any], key: str) -> int:
    value = data.get(key)
    # u64 amounts may arrive as decimal strings
    if isinstance(value, str) and value.isdigit():
        return int(value)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise DecodeError(f"Field '{key}' must be a non-negative integer")
    return value


def _timestamp(data: dict[str, Any]) -> datetime:
    value = data.get("timestamp")
    if value is None:
        return datetime.now(UTC)
    if isinstance(value, int | float) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, UTC)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    raise DecodeError("Field 'timestamp' must be epoch seconds or ISO-8601")


def _purchased(d: dict[str, Any]) -> TokensPurchased:
    return TokensPurchased(
        market=_str(d, "market"),
        buyer=_str(d, "buyer"),
        amount=_int(d, "amount"),
        cost=_int(d, "cost"),
        new_supply=_int(d, "newSupply"),
        timestamp=_timestamp(d),
    )


def _sold(d: dict[str, Any]) -> TokensSold:
    return TokensSold(
        market=_str(d, "market"),
        seller=_str(d, "seller"),
        amount=_int(d, "amount"),
        refund=_int(d, "refund"),
        new_supply=_int(d, "newSupply"),
        timestamp=_timestamp(d),
    )


def _staked(d: dict[str, Any]) -> TokensStaked:
    return TokensStaked(
        market=_str(d, "market"),
        author=_str(d, "author"),
        amount=_int(d, "amount"),
        total_staked=_int(d, "totalStaked"),
        timestamp=_timestamp(d),
    )


def _unstaked(d: dict[str, Any]) -> TokensUnstaked:
    return TokensUnstaked(
        market=_str(d, "market"),
        author=_str(d, "author"),
        amount=_int(d, "amount"),
        total_staked=_int(d, "totalStaked"),
        timestamp=_timestamp(d),
    )


def _fees(d: dict[str, Any]) -> FeesClaimed:
    return FeesClaimed(
        market=_str(d, "market"),
        author=_str(d, "author"),
        amount=_int(d, "amount"),
        timestamp=_timestamp(d),
    )


_DECODERS: dict[str, Callable[[dict[str, Any]], LedgerEvent]] = {
    "TokensPurchased": _purchased,
    "TokensSold": _sold,
    "TokensStaked": _staked,
    "TokensUnstaked": _unstaked,
    "FeesClaimed": _fees,
}


def decode_ledger_event(raw: bytes | str | dict[str, Any]) -> LedgerEvent:
    """Decode one gateway event. Raises DecodeError on any shape mismatch."""
    if isinstance(raw, bytes | str):
        try:
            raw = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            raise DecodeError(f"Ledger event is not valid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise DecodeError("Ledger event must be a JSON object")
    event_type = raw.get("type")
    decoder = _DECODERS.get(event_type) if isinstance(event_type, str) else None
    if decoder is None:
        raise DecodeError(f"Unknown ledger event type: {event_type!r}")
    return decoder(raw)


class LedgerEventHandler:
    """Applies decoded ledger events to the store."""

    def __init__(self, db: Database, orchestrator: TrendOrchestrator | None = None) -> None:
        self._db = db
        self._orchestrator = orchestrator

    async def handle(self, event: LedgerEvent) -> None:
        item_id = await self._db.get_item_id_by_market(event.market)
        if item_id is None:
            logger.debug("Ledger event for unknown market", market=event.market)
            return

        if isinstance(event, TokensPurchased):
            await self._db.record_trade(
                item_id, event.buyer, "buy", event.amount, event.cost, event.new_supply, event.timestamp
            )
            await self._after_trade(item_id)
        elif isinstance(event, TokensSold):
            await self._db.record_trade(
                item_id,
                event.seller,
                "sell",
                event.amount,
                event.refund,
                event.new_supply,
                event.timestamp,
            )
            await self._after_trade(item_id)
        elif isinstance(event, TokensStaked | TokensUnstaked):
            await self._db.update_staking(item_id, event.total_staked)
        elif isinstance(event, FeesClaimed):
            await self._db.record_fees_claimed(item_id, event.amount)

        logger.debug("Ledger event applied", event=type(event).__name__, item_id=item_id)

    async def _after_trade(self, item_id: str) -> None:
        await self._db.refresh_item_statistics(item_id)
        if self._orchestrator is not None:
            self._orchestrator.mark_for_update(item_id)


async def run_ledger_event_listener(
    redis: Redis,
    channel: str,
    handler: LedgerEventHandler,
    shutdown_event: asyncio.Event,
) -> None:
    """Consume ledger events from a Redis pub/sub channel until shutdown."""
    pubsub = redis.pubsub()
    await pubsub.subscribe(channel)
    logger.debug("Ledger event listener started", channel=channel)

    try:
        while not shutdown_event.is_set():
            try:
                message = await asyncio.wait_for(
                    pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0),
                    timeout=5.0,
                )
            except TimeoutError:
                continue

            if message is None or message["type"] != "message":
                continue

            try:
                event = decode_ledger_event(message["data"])
            except DecodeError as e:
                logger.warning("Dropping malformed ledger event", error=e.message)
                continue

            try:
                await handler.handle(event)
            except Exception:
                logger.exception("Ledger event handling failed", event=type(event).__name__)
    finally:
        await pubsub.unsubscribe(channel)
        await pubsub.aclose()
        logger.debug("Ledger event listener stopped")
