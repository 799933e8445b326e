"""FastAPI application entry point."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from trendline.agent import agent_lifespan
from trendline.api.router import api_router
from trendline.config import get_settings
from trendline.core.dependencies import AgentStateDep
from trendline.core.logging import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: starts scoring and flash market jobs alongside the HTTP server."""
    settings = get_settings()
    setup_logging(settings)
    shutdown_event = asyncio.Event()

    async with agent_lifespan(settings, shutdown_event) as state:
        app.state.agent = state
        app.state.shutdown_event = shutdown_event
        logger.info("Trendline ready", env=settings.env)
        yield
        shutdown_event.set()


app = FastAPI(
    title="Trendline",
    description="Trend scoring and flash markets for a tokenized-content marketplace",
    version="0.1.0",
    lifespan=lifespan,
)

# Infrastructure (no prefix, not versioned)


@app.get("/health")
async def health() -> dict[str, str]:
    """Liveness check: always ok if process is running."""
    return {"status": "ok"}


@app.get("/ready")
async def ready(state: AgentStateDep) -> dict[str, str]:
    """Readiness check: verifies infrastructure is connected."""
    checks: dict[str, str] = {}
    try:
        await state.redis.ping()  # type: ignore[misc]
        checks["redis"] = "ok"
    except Exception:
        checks["redis"] = "error"
    try:
        await state.db.fetchval("SELECT 1")
        checks["db"] = "ok"
    except Exception:
        checks["db"] = "error"
    checks["scheduler"] = "ok" if state.scheduler and state.scheduler.running else "error"
    checks["inference"] = "degraded" if state.breaker.is_open else "ok"
    status = "ready" if all(v != "error" for v in checks.values()) else "not_ready"
    return {"status": status, **checks}


# Domain API
app.include_router(api_router, prefix="/api/v1")
