"""PostgreSQL database connection using raw asyncpg."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, cast

import asyncpg
import orjson

from trendline.core.exceptions import ItemNotFoundError, PersistenceError
from trendline.core.logging import get_logger
from trendline.processing.flash.models import FlashMarket, FlashPosition
from trendline.processing.trend.models import (
    ItemActivity,
    MarketContext,
    TrendCandidate,
    TrendFactors,
    TrendHistoryPoint,
    TrendResult,
    TrendWeights,
)

if TYPE_CHECKING:
    from trendline.processing.flash.models import Direction, PositionSettlement

logger = get_logger(__name__)


def _json(value: Any) -> str:
    return orjson.dumps(value).decode("utf-8")


def _loads(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str | bytes):
        return orjson.loads(value)
    return value


class Database:
    """Async PostgreSQL database wrapper using asyncpg."""

    def __init__(self, dsn: str, min_size: int = 5, max_size: int = 20) -> None:
        self._dsn = dsn
        self._min_size = min_size
        self._max_size = max_size
        self._pool: asyncpg.Pool[asyncpg.Record] | None = None

    async def connect(self) -> None:
        """Create connection pool."""
        # Convert SQLAlchemy-style DSN to asyncpg format
        dsn = self._dsn.replace("postgresql+asyncpg://", "postgresql://")

        async def init_connection(conn: asyncpg.Connection[asyncpg.Record]) -> None:
            """Initialize each connection with trendline schema search_path."""
            await conn.execute("SET search_path TO trendline, public")

        self._pool = await asyncpg.create_pool(
            dsn,
            min_size=self._min_size,
            max_size=self._max_size,
            init=init_connection,
        )
        logger.debug("Database pool created", min_size=self._min_size, max_size=self._max_size)

    async def disconnect(self) -> None:
        """Close connection pool."""
        if self._pool:
            await self._pool.close()
            logger.debug("Database pool closed")

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[asyncpg.Connection[asyncpg.Record]]:
        """Acquire a connection from the pool."""
        if not self._pool:
            raise RuntimeError("Database not connected. Call connect() first.")
        async with self._pool.acquire() as conn:
            yield conn

    async def execute(self, query: str, *args: Any) -> str:
        """Execute a query and return status."""
        async with self.acquire() as conn:
            result = await conn.execute(query, *args)
            return cast(str, result)

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        """Fetch multiple rows."""
        async with self.acquire() as conn:
            result = await conn.fetch(query, *args)
            return list(result)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        """Fetch a single row."""
        async with self.acquire() as conn:
            return await conn.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        """Fetch a single value."""
        async with self.acquire() as conn:
            return await conn.fetchval(query, *args)

    # -------------------------------------------------------------------------
    # Item activity (trend factor inputs)
    # -------------------------------------------------------------------------

    async def get_item_activity(self, item_id: str) -> ItemActivity | None:
        """Read one item's trailing activity window.

        Returns:
            ItemActivity, or None if the item does not exist
        """
        async with self.acquire() as conn:
            item = await conn.fetchrow(
                """
                SELECT id, headline, content, price_change_24h, holder_count
                FROM items WHERE id = $1
                """,
                item_id,
            )
            if item is None:
                return None
            trade_count = await conn.fetchval(
                """
                SELECT COUNT(*) FROM trades
                WHERE item_id = $1 AND time > NOW() - INTERVAL '1 hour'
                """,
                item_id,
            )
            buckets = await conn.fetch(
                """
                SELECT volume FROM volume_minutes
                WHERE item_id = $1 AND minute > NOW() - INTERVAL '24 hours'
                ORDER BY minute DESC
                LIMIT 1440
                """,
                item_id,
            )
            social = await conn.fetchrow(
                """
                SELECT
                    (SELECT COUNT(*) FROM comments
                     WHERE item_id = $1 AND created_at > NOW() - INTERVAL '1 hour') AS comments,
                    (SELECT COUNT(*) FROM likes
                     WHERE item_id = $1 AND created_at > NOW() - INTERVAL '1 hour') AS likes
                """,
                item_id,
            )

        return ItemActivity(
            item_id=item["id"],
            headline=item["headline"] or "",
            content=item["content"] or "",
            trade_count_1h=int(trade_count or 0),
            volume_buckets=[float(r["volume"]) for r in buckets],
            price_change_24h=float(item["price_change_24h"] or 0),
            comment_count_1h=int(social["comments"]) if social else 0,
            like_count_1h=int(social["likes"]) if social else 0,
            holder_count=int(item["holder_count"] or 0),
        )

    async def get_volume_series(self, item_id: str, minutes: int) -> list[float]:
        """Per-minute volume over the trailing ``minutes``, most recent first."""
        rows = await self.fetch(
            """
            SELECT volume FROM volume_minutes
            WHERE item_id = $1 AND minute > NOW() - make_interval(mins => $2)
            ORDER BY minute DESC
            """,
            item_id,
            minutes,
        )
        return [float(r["volume"]) for r in rows]

    async def get_peer_volume_series(
        self, item_id: str, limit: int, minutes: int
    ) -> list[list[float]]:
        """Volume series of the top ``limit`` other items by 24h volume."""
        peers = await self.fetch(
            """
            SELECT id FROM items
            WHERE id <> $1 AND volume_24h > 0
            ORDER BY volume_24h DESC
            LIMIT $2
            """,
            item_id,
            limit,
        )
        peer_ids = [r["id"] for r in peers]
        if not peer_ids:
            return []
        rows = await self.fetch(
            """
            SELECT item_id, volume FROM volume_minutes
            WHERE item_id = ANY($1::text[]) AND minute > NOW() - make_interval(mins => $2)
            ORDER BY item_id, minute DESC
            """,
            peer_ids,
            minutes,
        )
        series: dict[str, list[float]] = {pid: [] for pid in peer_ids}
        for r in rows:
            series[r["item_id"]].append(float(r["volume"]))
        return [series[pid] for pid in peer_ids]

    async def get_market_context(self) -> MarketContext:
        """Aggregate market conditions over items traded in the last 24h."""
        row = await self.fetchrow(
            """
            SELECT
                COUNT(*) AS active,
                COALESCE(AVG(ABS(price_change_24h)), 0) AS volatility,
                COALESCE(AVG(sentiment_score), 0) AS sentiment
            FROM items
            WHERE volume_24h > 0
            """
        )
        active = int(row["active"]) if row else 0
        volatility = float(row["volatility"]) if row else 0.0
        sentiment = float(row["sentiment"]) if row else 0.0
        return MarketContext(
            timestamp=datetime.now(UTC),
            volatility="high" if volatility > 20 else "medium" if volatility > 5 else "low",
            overall_sentiment=(
                "bullish" if sentiment > 0.2 else "bearish" if sentiment < -0.2 else "neutral"
            ),
            active_markets=active,
        )

    # -------------------------------------------------------------------------
    # Trend results
    # -------------------------------------------------------------------------

    async def get_trend_candidates(
        self, threshold_hours: float, min_volume: float
    ) -> list[TrendCandidate]:
        """Items that traded recently, have volume, or have a stale (or no) score."""
        rows = await self.fetch(
            """
            SELECT i.id, i.volume_24h, i.last_trend_update
            FROM items i
            WHERE EXISTS (
                    SELECT 1 FROM trades t
                    WHERE t.item_id = i.id AND t.time > NOW() - make_interval(secs => $1)
                )
               OR i.volume_24h > $2
               OR i.last_trend_update IS NULL
               OR i.last_trend_update < NOW() - make_interval(secs => $1)
            ORDER BY i.volume_24h DESC
            """,
            threshold_hours * 3600,
            min_volume,
        )
        return [
            TrendCandidate(
                item_id=r["id"],
                volume_24h=float(r["volume_24h"] or 0),
                last_trend_update=r["last_trend_update"],
            )
            for r in rows
        ]

    async def save_trend_result(self, result: TrendResult) -> float:
        """Write the latest-state fields and append a history row, atomically.

        Returns:
            Trend velocity (score points per second since the previous update)
        """
        try:
            async with self.acquire() as conn, conn.transaction():
                prev = await conn.fetchrow(
                    """
                    SELECT trend_index_score, last_trend_update
                    FROM items WHERE id = $1
                    FOR UPDATE
                    """,
                    result.item_id,
                )
                if prev is None:
                    raise ItemNotFoundError(f"Item {result.item_id} not found")

                velocity = 0.0
                if prev["last_trend_update"] is not None:
                    elapsed = (result.timestamp - prev["last_trend_update"]).total_seconds()
                    if elapsed > 0:
                        velocity = (result.score - float(prev["trend_index_score"] or 0)) / elapsed

                await conn.execute(
                    """
                    UPDATE items SET
                        trend_index_score = $2,
                        trend_velocity = $3,
                        sentiment_score = $4,
                        mention_velocity = $5,
                        holder_momentum = $6,
                        cross_market_corr = $7,
                        trend_factor_weights = $8,
                        last_trend_update = $9
                    WHERE id = $1
                    """,
                    result.item_id,
                    result.score,
                    velocity,
                    result.factors.sentiment,
                    result.factors.social_activity,
                    result.factors.holder_momentum,
                    result.factors.cross_market_corr,
                    _json(result.weights.model_dump(by_alias=True)),
                    result.timestamp,
                )
                await conn.execute(
                    """
                    INSERT INTO trend_history (
                        item_id, time, score, velocity, factors, weights,
                        confidence, reasoning, provider
                    )
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                    """,
                    result.item_id,
                    result.timestamp,
                    result.score,
                    velocity,
                    _json(result.factors.model_dump(by_alias=True)),
                    _json(result.weights.model_dump(by_alias=True)),
                    result.confidence,
                    result.reasoning,
                    result.provider,
                )
        except asyncpg.PostgresError as e:
            raise PersistenceError(f"Failed to save trend for {result.item_id}: {e}") from e

        logger.debug(
            "Trend result saved",
            item_id=result.item_id,
            score=result.score,
            velocity=velocity,
        )
        return velocity

    async def get_latest_trend(self, item_id: str) -> TrendResult | None:
        """Most recent persisted TrendResult (last known good)."""
        row = await self.fetchrow(
            """
            SELECT item_id, time, score, factors, weights, confidence, reasoning, provider
            FROM trend_history
            WHERE item_id = $1
            ORDER BY time DESC
            LIMIT 1
            """,
            item_id,
        )
        if row is None:
            return None
        return TrendResult(
            item_id=row["item_id"],
            score=float(row["score"]),
            factors=TrendFactors.model_validate(_loads(row["factors"])),
            weights=TrendWeights.model_validate(_loads(row["weights"])),
            confidence=float(row["confidence"]),
            reasoning=row["reasoning"],
            timestamp=row["time"],
            provider=row["provider"],
        )

    async def get_trend_history(self, item_id: str, limit: int = 2) -> list[TrendHistoryPoint]:
        """Recent score points, most recent first."""
        rows = await self.fetch(
            """
            SELECT score, time FROM trend_history
            WHERE item_id = $1
            ORDER BY time DESC
            LIMIT $2
            """,
            item_id,
            limit,
        )
        return [TrendHistoryPoint(score=float(r["score"]), timestamp=r["time"]) for r in rows]

    async def get_spike_candidates(self, min_score: float, limit: int) -> list[str]:
        """Items above ``min_score`` with the fastest-moving scores."""
        rows = await self.fetch(
            """
            SELECT id FROM items
            WHERE trend_index_score > $1
            ORDER BY ABS(trend_velocity) DESC
            LIMIT $2
            """,
            min_score,
            limit,
        )
        return [r["id"] for r in rows]

    async def get_item_weights(self, item_id: str) -> TrendWeights | None:
        value = await self.fetchval(
            "SELECT trend_factor_weights FROM items WHERE id = $1",
            item_id,
        )
        data = _loads(value)
        return TrendWeights.model_validate(data) if data else None

    # -------------------------------------------------------------------------
    # Flash markets
    # -------------------------------------------------------------------------

    async def insert_flash_market(self, market: FlashMarket) -> None:
        await self.execute(
            """
            INSERT INTO flash_markets (
                id, item_id, snapshot_weights, start_time, end_time,
                initial_velocity, is_active, is_resolved
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            """,
            market.id,
            market.item_id,
            _json(market.snapshot_weights.model_dump(by_alias=True))
            if market.snapshot_weights
            else None,
            market.start_time,
            market.end_time,
            market.initial_velocity,
            market.is_active,
            market.is_resolved,
        )
        logger.debug("Flash market inserted", market_id=str(market.id), item_id=market.item_id)

    async def get_flash_market(self, market_id: str) -> FlashMarket | None:
        row = await self.fetchrow("SELECT * FROM flash_markets WHERE id = $1::uuid", market_id)
        return self._market_from_row(row) if row else None

    async def get_active_flash_markets(self) -> list[FlashMarket]:
        rows = await self.fetch(
            """
            SELECT * FROM flash_markets
            WHERE is_active = TRUE AND is_resolved = FALSE
            ORDER BY end_time
            """
        )
        return [self._market_from_row(r) for r in rows]

    async def get_expired_flash_markets(self, now: datetime) -> list[FlashMarket]:
        rows = await self.fetch(
            """
            SELECT * FROM flash_markets
            WHERE is_active = TRUE AND is_resolved = FALSE AND end_time <= $1
            ORDER BY end_time
            """,
            now,
        )
        return [self._market_from_row(r) for r in rows]

    async def get_unresolved_positions(self, market_id: Any) -> list[FlashPosition]:
        rows = await self.fetch(
            """
            SELECT id, market_id, user_id, direction, stake_amount
            FROM flash_positions
            WHERE market_id = $1 AND is_resolved = FALSE
            """,
            market_id,
        )
        return [
            FlashPosition(
                id=r["id"],
                market_id=r["market_id"],
                user_id=r["user_id"],
                direction=r["direction"],
                stake_amount=float(r["stake_amount"]),
            )
            for r in rows
        ]

    async def settle_flash_market(
        self,
        market_id: Any,
        final_velocity: float,
        winning_side: Direction,
        settlements: list[PositionSettlement],
    ) -> bool:
        """Resolve a market and its positions in one transaction.

        Positions are only touched while still unresolved, so a repeated call
        cannot pay out twice.

        Returns:
            False if the market was already resolved
        """
        try:
            async with self.acquire() as conn, conn.transaction():
                resolved = await conn.fetchval(
                    """
                    UPDATE flash_markets SET
                        final_velocity = $2,
                        winning_side = $3,
                        is_active = FALSE,
                        is_resolved = TRUE,
                        resolved_at = NOW()
                    WHERE id = $1 AND is_resolved = FALSE
                    RETURNING id
                    """,
                    market_id,
                    final_velocity,
                    winning_side.value,
                )
                if resolved is None:
                    return False
                await conn.executemany(
                    """
                    UPDATE flash_positions SET
                        payout = $2,
                        profit_loss = $3,
                        is_resolved = TRUE
                    WHERE id = $1 AND is_resolved = FALSE
                    """,
                    [(s.position_id, s.payout, s.profit_loss) for s in settlements],
                )
        except asyncpg.PostgresError as e:
            raise PersistenceError(f"Failed to settle flash market {market_id}: {e}") from e

        logger.debug(
            "Flash market settled",
            market_id=str(market_id),
            winning_side=winning_side.value,
            positions=len(settlements),
        )
        return True

    @staticmethod
    def _market_from_row(row: asyncpg.Record) -> FlashMarket:
        weights = _loads(row["snapshot_weights"])
        return FlashMarket(
            id=row["id"],
            item_id=row["item_id"],
            snapshot_weights=TrendWeights.model_validate(weights) if weights else None,
            start_time=row["start_time"],
            end_time=row["end_time"],
            initial_velocity=float(row["initial_velocity"]),
            final_velocity=(
                float(row["final_velocity"]) if row["final_velocity"] is not None else None
            ),
            winning_side=row["winning_side"],
            is_active=row["is_active"],
            is_resolved=row["is_resolved"],
            total_up_amount=float(row["total_up_amount"] or 0),
            total_down_amount=float(row["total_down_amount"] or 0),
            participant_count=int(row["participant_count"] or 0),
        )

    # -------------------------------------------------------------------------
    # Ledger events
    # -------------------------------------------------------------------------

    async def get_item_id_by_market(self, market_address: str) -> str | None:
        value = await self.fetchval(
            "SELECT id FROM items WHERE market_address = $1",
            market_address,
        )
        return cast(str | None, value)

    async def record_trade(
        self,
        item_id: str,
        trader: str,
        side: str,
        amount: int,
        total: int,
        new_supply: int,
        time: datetime,
    ) -> None:
        """Insert a trade, bump the minute volume bucket and circulating supply."""
        price = total / amount if amount else 0.0
        async with self.acquire() as conn, conn.transaction():
            await conn.execute(
                """
                INSERT INTO trades (item_id, trader, side, amount, price, total, time)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                """,
                item_id,
                trader,
                side,
                amount,
                price,
                total,
                time,
            )
            await conn.execute(
                """
                INSERT INTO volume_minutes (item_id, minute, volume)
                VALUES ($1, date_trunc('minute', $2::timestamptz), $3)
                ON CONFLICT (item_id, minute) DO UPDATE SET
                    volume = volume_minutes.volume + EXCLUDED.volume
                """,
                item_id,
                time,
                total,
            )
            await conn.execute(
                "UPDATE items SET circulating_supply = $2 WHERE id = $1",
                item_id,
                new_supply,
            )
        logger.debug("Trade recorded", item_id=item_id, side=side, amount=amount, total=total)

    async def refresh_item_statistics(self, item_id: str) -> None:
        """Recompute volume_24h, current price and 24h price change from trades."""
        rows = await self.fetch(
            """
            SELECT amount, price FROM trades
            WHERE item_id = $1 AND time > NOW() - INTERVAL '24 hours'
            ORDER BY time
            """,
            item_id,
        )
        if not rows:
            await self.execute("UPDATE items SET volume_24h = 0 WHERE id = $1", item_id)
            return

        volume = sum(float(r["amount"]) * float(r["price"]) for r in rows)
        first_price = float(rows[0]["price"])
        last_price = float(rows[-1]["price"])
        change = (last_price - first_price) / first_price * 100 if first_price > 0 else 0.0

        await self.execute(
            """
            UPDATE items SET
                volume_24h = $2,
                current_price = $3,
                price_change_24h = $4
            WHERE id = $1
            """,
            item_id,
            volume,
            last_price,
            change,
        )

    async def update_staking(self, item_id: str, total_staked: int) -> None:
        await self.execute(
            "UPDATE items SET total_staked = $2 WHERE id = $1",
            item_id,
            total_staked,
        )

    async def record_fees_claimed(self, item_id: str, amount: int) -> None:
        await self.execute(
            "UPDATE items SET fees_claimed = fees_claimed + $2 WHERE id = $1",
            item_id,
            amount,
        )


# Global database instance (initialized in lifespan)
_db: Database | None = None


def get_database() -> Database:
    """Get the global database instance."""
    if _db is None:
        raise RuntimeError("Database not initialized")
    return _db


async def init_database(dsn: str) -> Database:
    """Initialize the global database instance."""
    global _db
    _db = Database(dsn)
    await _db.connect()
    return _db


async def close_database() -> None:
    """Close the global database instance."""
    global _db
    if _db:
        await _db.disconnect()
        _db = None
