"""Service lifecycle used by the FastAPI server.

Provides `agent_lifespan()`: an async context manager that builds every
component once, starts the periodic jobs, and tears everything down in
reverse order. Components are passed to each other explicitly; the yielded
AgentState is how the HTTP layer reaches them.

Configuration (set in .env):
    - DATABASE_URL, REDIS_URL: storage
    - LLM_PROVIDER, ANTHROPIC_API_KEY / OPENAI_API_KEY: inference
    - LEDGER_GATEWAY_URL: settlement gateway
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from redis.asyncio import Redis

from trendline.agent.scheduler import create_scheduler
from trendline.config import Settings
from trendline.core.circuit_breaker import CircuitBreaker
from trendline.core.events import ALL_TOPICS, NotificationBus
from trendline.core.logging import get_logger
from trendline.ledger.client import LedgerClient
from trendline.ledger.events import LedgerEventHandler, run_ledger_event_listener
from trendline.processing.flash.detector import VelocitySpikeDetector
from trendline.processing.flash.lifecycle import FlashMarketLifecycle
from trendline.processing.trend.factors import TrendFactorCollector
from trendline.processing.trend.inference import InferenceClient
from trendline.processing.trend.orchestrator import TrendOrchestrator
from trendline.processing.trend.sentiment import SentimentScorer
from trendline.storage.database import Database, close_database, init_database
from trendline.storage.redis import close_redis, init_redis, redis_forwarder
from trendline.storage.request_cache import ResilientCache

logger = get_logger(__name__)


@dataclass
class AgentState:
    """Holds references to all running service components."""

    redis: Redis
    db: Database
    settings: Settings
    bus: NotificationBus
    breaker: CircuitBreaker
    ledger: LedgerClient
    orchestrator: TrendOrchestrator
    lifecycle: FlashMarketLifecycle
    ledger_cache: ResilientCache
    scheduler: AsyncIOScheduler | None = None
    _background_tasks: list[asyncio.Task[None]] = field(default_factory=list)


@asynccontextmanager
async def agent_lifespan(
    settings: Settings,
    shutdown_event: asyncio.Event,
) -> AsyncIterator[AgentState]:
    """Async context manager that starts/stops the whole service.

    Yields an AgentState with references to all running resources.
    On exit, gracefully shuts down everything.
    """
    redis: Redis | None = None
    db_initialized = False
    breaker: CircuitBreaker | None = None
    ledger: LedgerClient | None = None
    ledger_cache: ResilientCache | None = None
    orchestrator: TrendOrchestrator | None = None
    lifecycle: FlashMarketLifecycle | None = None
    scheduler: AsyncIOScheduler | None = None
    listener_task: asyncio.Task[None] | None = None

    try:
        # 1. Storage
        logger.debug("Connecting to Redis")
        redis = await init_redis(settings.redis_url)

        logger.debug("Connecting to PostgreSQL")
        db = await init_database(settings.database_url)
        db_initialized = True

        # 2. Shared plumbing
        bus = NotificationBus()
        bus.subscribe(ALL_TOPICS, redis_forwarder(redis))

        breaker = CircuitBreaker(
            threshold=settings.circuit_breaker_threshold,
            timeout_ms=settings.circuit_breaker_timeout_ms,
            name="inference",
        )

        ledger_cache = ResilientCache(
            name="ledger",
            default_ttl=settings.cache_default_ttl_seconds,
            max_requests_per_second=settings.cache_max_requests_per_second,
        )
        ledger = LedgerClient(
            settings.ledger_gateway_url,
            api_key=settings.ledger_api_key.get_secret_value() if settings.ledger_api_key else None,
            timeout=settings.ledger_timeout_seconds,
            cache=ledger_cache,
        )

        # 3. Trend scoring
        orchestrator = TrendOrchestrator(
            db=db,
            collector=TrendFactorCollector(db, SentimentScorer()),
            inference=InferenceClient(breaker),
            settings=settings,
            ledger=ledger,
            bus=bus,
        )

        # 4. Flash markets
        detector = VelocitySpikeDetector(
            db,
            velocity_threshold=settings.flash_velocity_threshold,
            cooldown_ms=settings.flash_cooldown_ms,
        )
        lifecycle = FlashMarketLifecycle(db, detector, bus, settings, ledger=ledger)

        # 5. Periodic jobs
        scheduler = create_scheduler()
        orchestrator.start(scheduler)
        lifecycle.start(scheduler)
        orchestrator.cache.start_sweeper(scheduler, settings.cache_sweep_interval_minutes)
        ledger_cache.start_sweeper(scheduler, settings.cache_sweep_interval_minutes)
        scheduler.start()

        # 6. Ledger events
        background_tasks: list[asyncio.Task[None]] = []
        if settings.ledger_events_enabled:
            listener_task = asyncio.create_task(
                run_ledger_event_listener(
                    redis,
                    settings.ledger_events_channel,
                    LedgerEventHandler(db, orchestrator),
                    shutdown_event,
                )
            )
            background_tasks.append(listener_task)

        logger.info(
            "Service ready",
            llm_provider=settings.llm_provider,
            llm_model=settings.llm_model,
            update_interval_minutes=settings.trend_update_interval_minutes,
            ledger_events=settings.ledger_events_enabled,
        )

        yield AgentState(
            redis=redis,
            db=db,
            settings=settings,
            bus=bus,
            breaker=breaker,
            ledger=ledger,
            orchestrator=orchestrator,
            lifecycle=lifecycle,
            ledger_cache=ledger_cache,
            scheduler=scheduler,
            _background_tasks=background_tasks,
        )

    finally:
        logger.info("Shutting down...")
        shutdown_event.set()

        if lifecycle:
            lifecycle.stop()

        if orchestrator:
            # Lets an in-flight cycle finish persisting before pools close
            await orchestrator.stop()
            orchestrator.cache.stop_sweeper()

        if ledger_cache:
            ledger_cache.stop_sweeper()

        if scheduler and scheduler.running:
            scheduler.shutdown(wait=False)
            logger.debug("Scheduler stopped")

        if listener_task:
            listener_task.cancel()
            try:
                await listener_task
            except asyncio.CancelledError:
                pass
            logger.debug("Ledger event listener stopped")

        if breaker:
            breaker.close()

        if ledger:
            try:
                await ledger.close()
            except Exception as e:
                logger.error("Failed to close ledger client", error=str(e))

        if db_initialized:
            await close_database()
            logger.debug("PostgreSQL disconnected")

        if redis:
            await close_redis()

        logger.info("Shutdown complete")
