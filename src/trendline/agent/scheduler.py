"""Centralized job scheduler for periodic flows."""

from __future__ import annotations

from apscheduler.schedulers.asyncio import AsyncIOScheduler


def create_scheduler() -> AsyncIOScheduler:
    """Create a new scheduler instance.

    Jobs are registered by their owners (TrendOrchestrator, FlashMarketLifecycle,
    ResilientCache sweepers) through their ``start`` methods.
    """
    return AsyncIOScheduler(timezone="UTC")
