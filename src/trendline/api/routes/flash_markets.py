"""Flash market read endpoints."""

from uuid import UUID

from fastapi import APIRouter, HTTPException

from trendline.core.dependencies import DbDep

router = APIRouter()


@router.get("/active")
async def list_active(db: DbDep) -> list[dict[str, object]]:
    markets = await db.get_active_flash_markets()
    return [m.model_dump(mode="json") for m in markets]


@router.get("/{market_id}")
async def get_market(market_id: UUID, db: DbDep) -> dict[str, object]:
    market = await db.get_flash_market(str(market_id))
    if market is None:
        raise HTTPException(status_code=404, detail=f"Flash market {market_id} not found")
    return market.model_dump(mode="json")
