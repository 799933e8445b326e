"""Redis connection shared by the ledger event listener and notification fan-out.

Two kinds of traffic use it:
- inbound ledger events on ``LEDGER_EVENTS_CHANNEL`` (pub/sub, consumed by
  ``ledger.events.run_ledger_event_listener``)
- outbound notifications mirrored from the ``NotificationBus`` to
  ``trendline:notifications:<event type>``
"""

from typing import TYPE_CHECKING, Any

import orjson
from redis.asyncio import Redis

from trendline.core.constants import NOTIFICATION_CHANNEL_PREFIX
from trendline.core.logging import get_logger

if TYPE_CHECKING:
    from trendline.core.events import Event, Handler

logger = get_logger(__name__)

# Set by init_redis() in the lifespan
_redis: Redis | None = None

HEALTH_CHECK_INTERVAL_SECONDS = 30


async def init_redis(redis_url: str) -> Redis:
    """Connect and ping; raises if the server is unreachable."""
    global _redis
    client = Redis.from_url(
        redis_url,
        decode_responses=False,
        health_check_interval=HEALTH_CHECK_INTERVAL_SECONDS,
    )
    await client.ping()
    _redis = client
    logger.info("Redis connected")
    return client


async def close_redis() -> None:
    global _redis
    if _redis is None:
        return
    await _redis.aclose()
    _redis = None
    logger.info("Redis disconnected")


def notification_channel(topic: str) -> str:
    return f"{NOTIFICATION_CHANNEL_PREFIX}:{topic}"


async def publish_json(redis: Redis, channel: str, payload: dict[str, Any]) -> int:
    """Publish ``payload`` as JSON. Returns the number of subscribers reached."""
    receivers: int = await redis.publish(channel, orjson.dumps(payload))
    logger.debug("Published to Redis", channel=channel, receivers=receivers)
    return receivers


def redis_forwarder(redis: Redis) -> "Handler":
    """Bus handler mirroring each event to ``notification_channel(<type>)``."""

    async def forward(event: "Event") -> None:
        await publish_json(redis, notification_channel(event.event_type.value), event.to_dict())

    return forward
