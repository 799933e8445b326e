"""System status and config endpoints."""

from fastapi import APIRouter

from trendline.core.dependencies import AgentStateDep, SettingsDep

router = APIRouter()


@router.get("/status")
async def system_status(state: AgentStateDep) -> dict[str, object]:
    return {
        "orchestrator": state.orchestrator.status(),
        "circuit_breaker": state.breaker.status(),
        "ledger_cache": state.ledger_cache.stats(),
        "scheduler_running": state.scheduler is not None and state.scheduler.running,
    }


@router.get("/config")
async def system_config(settings: SettingsDep) -> dict[str, object]:
    return {
        "env": settings.env,
        "llm_provider": settings.llm_provider,
        "update_interval_minutes": settings.trend_update_interval_minutes,
        "batch_size": settings.trend_batch_size,
        "velocity_threshold": settings.flash_velocity_threshold,
        "cooldown_ms": settings.flash_cooldown_ms,
        "zero_winner_policy": settings.flash_zero_winner_policy,
    }


@router.post("/cache/clear")
async def clear_cache(state: AgentStateDep) -> dict[str, str]:
    state.orchestrator.clear_cache()
    state.ledger_cache.clear()
    return {"status": "cleared"}
