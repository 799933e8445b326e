"""Trend velocity spike detection with per-item cooldown."""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING

from trendline.core.logging import get_logger
from trendline.processing.trend.models import TrendHistoryPoint

if TYPE_CHECKING:
    from trendline.storage.database import Database

logger = get_logger(__name__)


def compute_velocity(history: Sequence[TrendHistoryPoint]) -> float:
    """Score points per second between the two most recent points.

    ``history`` is most-recent-first. 0.0 with fewer than two points or a
    non-positive time delta.
    """
    if len(history) < 2:
        return 0.0
    latest, previous = history[0], history[1]
    elapsed = (latest.timestamp - previous.timestamp).total_seconds()
    if elapsed <= 0:
        return 0.0
    return (latest.score - previous.score) / elapsed


class VelocitySpikeDetector:
    """Flags items whose trend score moves faster than ``velocity_threshold``.

    An item that fired is silenced for ``cooldown_ms`` from the moment of
    detection, so a spike sustained across scans produces one market.
    """

    def __init__(
        self,
        db: Database,
        velocity_threshold: float = 5.0,
        cooldown_ms: int = 120_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._db = db
        self.velocity_threshold = velocity_threshold
        self.cooldown_ms = cooldown_ms
        self._clock = clock
        self._last_trigger: dict[str, float] = {}

    def in_cooldown(self, item_id: str) -> bool:
        last = self._last_trigger.get(item_id)
        if last is None:
            return False
        return (self._clock() - last) * 1000 < self.cooldown_ms

    async def detect(self, item_id: str) -> float | None:
        """Return the spike velocity if ``item_id`` is spiking, else None."""
        if self.in_cooldown(item_id):
            return None

        history = await self._db.get_trend_history(item_id, limit=2)
        if len(history) < 2:
            return None

        velocity = compute_velocity(history)
        if abs(velocity) <= self.velocity_threshold:
            return None

        self._last_trigger[item_id] = self._clock()
        logger.info(
            "Trend velocity spike detected",
            item_id=item_id,
            velocity=round(velocity, 3),
            threshold=self.velocity_threshold,
        )
        return velocity

    def prune(self) -> None:
        """Forget cooldowns that have already elapsed."""
        now = self._clock()
        expired = [k for k, t in self._last_trigger.items() if (now - t) * 1000 >= self.cooldown_ms]
        for k in expired:
            del self._last_trigger[k]
