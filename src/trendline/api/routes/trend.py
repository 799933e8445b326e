"""Trend index endpoints.

Reads always serve the last persisted result, so an unavailable inference
service shows up as a score that stops moving rather than as an error.
"""

from fastapi import APIRouter, HTTPException, Query

from trendline.core.dependencies import DbDep, OrchestratorDep
from trendline.processing.flash.detector import compute_velocity

router = APIRouter()


@router.get("/{item_id}")
async def get_trend(
    item_id: str,
    db: DbDep,
    history_limit: int = Query(20, ge=2, le=500),
) -> dict[str, object]:
    latest = await db.get_latest_trend(item_id)
    if latest is None:
        raise HTTPException(status_code=404, detail=f"No trend data for item {item_id}")
    history = await db.get_trend_history(item_id, limit=history_limit)
    return {
        "itemId": item_id,
        "current": latest.model_dump(mode="json", by_alias=True),
        "velocity": compute_velocity(history),
        "history": [p.model_dump(mode="json") for p in history],
    }


@router.post("/{item_id}/refresh")
async def refresh_trend(item_id: str, orchestrator: OrchestratorDep) -> dict[str, object]:
    result = await orchestrator.update_item(item_id, force=True)
    if result is None:
        raise HTTPException(status_code=503, detail=f"Trend update failed for item {item_id}")
    return result.model_dump(mode="json", by_alias=True)
