"""Shared retry policy for upstream calls, built on tenacity."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

from trendline.core.constants import RETRY_BASE_DELAY_SECONDS, RETRY_MAX_ATTEMPTS
from trendline.core.exceptions import RateLimitedError
from trendline.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def is_rate_limited(exc: BaseException) -> bool:
    """True for rate-limit-class failures (our own error or an HTTP 429)."""
    if isinstance(exc, RateLimitedError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code == 429
    return False


def exponential_backoff(base_delay: float = RETRY_BASE_DELAY_SECONDS) -> Callable[[int], float]:
    """Delay before retry ``n`` (1-based): base, 2*base, 4*base, ..."""

    def backoff(attempt: int) -> float:
        return base_delay * 2 ** (attempt - 1)

    return backoff


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Retrying after rate limit",
        attempt=retry_state.attempt_number,
        wait_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
        error=str(exc),
    )


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff retry restricted to a class of failures.

    Non-retryable exceptions propagate on the first attempt. After
    ``max_attempts`` the last exception is re-raised unchanged.
    """

    max_attempts: int = RETRY_MAX_ATTEMPTS
    backoff: Callable[[int], float] = field(default_factory=exponential_backoff)
    is_retryable: Callable[[BaseException], bool] = is_rate_limited
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)

    async def run(self, fn: Callable[[], Awaitable[T]]) -> T:
        retrying = AsyncRetrying(
            sleep=self.sleep,
            stop=stop_after_attempt(self.max_attempts),
            wait=lambda state: self.backoff(state.attempt_number),
            retry=retry_if_exception(self.is_retryable),
            before_sleep=_log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await fn()
        raise AssertionError("unreachable: tenacity re-raises on exhaustion")
