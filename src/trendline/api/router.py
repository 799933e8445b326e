"""Top-level API router: mounts all domain routers under /api/v1."""

from fastapi import APIRouter

from trendline.api.routes import flash_markets, pricing, system, trend

api_router = APIRouter()
api_router.include_router(trend.router, prefix="/trend", tags=["trend"])
api_router.include_router(flash_markets.router, prefix="/flash-markets", tags=["flash_markets"])
api_router.include_router(pricing.router, prefix="/pricing", tags=["pricing"])
api_router.include_router(system.router, prefix="/system", tags=["system"])
