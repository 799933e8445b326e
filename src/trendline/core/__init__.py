"""Core utilities: logging, events, exceptions, retry, circuit breaker."""

from trendline.core.circuit_breaker import CircuitBreaker
from trendline.core.events import Event, EventType, NotificationBus
from trendline.core.exceptions import TrendlineError
from trendline.core.logging import get_logger, setup_logging
from trendline.core.retry import RetryPolicy

__all__ = [
    "CircuitBreaker",
    "Event",
    "EventType",
    "NotificationBus",
    "RetryPolicy",
    "TrendlineError",
    "get_logger",
    "setup_logging",
]
