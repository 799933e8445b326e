"""Circuit breaker guarding calls to the inference service."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from trendline.core.exceptions import CircuitOpenError
from trendline.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitBreaker:
    """Consecutive-failure circuit breaker with timed auto-reset.

    closed -> open once ``threshold`` failures accumulate. While open,
    ``call`` raises CircuitOpenError without invoking the protected function.
    After ``timeout_ms`` the breaker closes again with the counter at zero.

    Any successful call resets the failure counter.

    The reset is scheduled on the running loop with ``call_later`` and the
    handle is owned here, so ``close()`` cancels it. The clock is also checked
    lazily, so a breaker tripped outside a loop still recovers.
    """

    def __init__(
        self,
        threshold: int = 5,
        timeout_ms: int = 60_000,
        name: str = "inference",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.threshold = threshold
        self.timeout_ms = timeout_ms
        self.name = name
        self._clock = clock
        self._failures = 0
        self._opened_at: float | None = None
        self._reset_handle: asyncio.TimerHandle | None = None

    @property
    def failure_count(self) -> int:
        return self._failures

    @property
    def is_open(self) -> bool:
        if self._opened_at is None:
            return False
        if self._clock() - self._opened_at >= self.timeout_ms / 1000:
            self.reset()
            return False
        return True

    async def call(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``fn`` under the breaker."""
        if self.is_open:
            raise CircuitOpenError(f"Circuit '{self.name}' is open")
        try:
            result = await fn()
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def record_success(self) -> None:
        self._failures = 0

    def record_failure(self) -> None:
        self._failures += 1
        if self._failures >= self.threshold and self._opened_at is None:
            self._trip()

    def _trip(self) -> None:
        self._opened_at = self._clock()
        logger.warning(
            "Circuit breaker opened",
            circuit=self.name,
            failures=self._failures,
            timeout_ms=self.timeout_ms,
        )
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._reset_handle = loop.call_later(self.timeout_ms / 1000, self.reset)

    def reset(self) -> None:
        """Close the circuit and clear the failure counter."""
        was_open = self._opened_at is not None
        self._cancel_timer()
        self._failures = 0
        self._opened_at = None
        if was_open:
            logger.info("Circuit breaker reset", circuit=self.name)

    def close(self) -> None:
        """Cancel any pending auto-reset timer."""
        self._cancel_timer()

    def _cancel_timer(self) -> None:
        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None

    def status(self) -> dict[str, object]:
        return {
            "open": self.is_open,
            "failureCount": self._failures,
            "threshold": self.threshold,
            "timeoutMs": self.timeout_ms,
        }
