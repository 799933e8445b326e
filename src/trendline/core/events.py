"""In-process notification bus.

Handlers subscribe per event type (or to every type via ``ALL_TOPICS``). The
lifespan attaches ``storage.redis.redis_forwarder`` to mirror events out.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from trendline.core.logging import get_logger

logger = get_logger(__name__)

ALL_TOPICS = "*"


class EventType(StrEnum):
    """Event types published on the notification bus."""

    # Trend events
    TREND_UPDATED = "TREND_UPDATED"

    # Flash market events
    FLASH_MARKET_CREATED = "FLASH_MARKET_CREATED"
    FLASH_MARKET_RESOLVED = "FLASH_MARKET_RESOLVED"


@dataclass
class Event:
    """An event in the system."""

    event_type: EventType
    payload: dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        """Flatten to the wire shape: ``{"type": ..., **payload}``."""
        return {
            "type": self.event_type.value,
            **self.payload,
            "timestamp": self.timestamp.isoformat(),
        }


Handler = Callable[[Event], Awaitable[None]]


class NotificationBus:
    """Topic -> handlers registry.

    Topics are event type values; ``"*"`` receives everything. A failing
    handler is logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for ``topic``. Returns an unsubscribe callable."""
        self._handlers[topic].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(topic)
            if handlers and handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def handler_count(self, topic: str) -> int:
        return len(self._handlers.get(topic, []))

    async def publish(self, event_type: EventType, payload: dict[str, Any]) -> Event:
        event = Event(event_type=event_type, payload=payload)
        handlers = [*self._handlers.get(event_type.value, []), *self._handlers.get(ALL_TOPICS, [])]
        for handler in handlers:
            try:
                await handler(event)
            except Exception:
                logger.exception("Notification handler failed", event_type=event_type.value)
        logger.debug("Event published", event_type=event_type.value, handlers=len(handlers))
        return event

