from fastapi import APIRouter, Depends

from .deps import RateCache, Settings, get_rate_cache, get_settings

router = APIRouter(tags=["health"])


@router.get("/health", summary="Liveness probe")
async def health(
    settings: Settings = Depends(get_settings),
    rates: RateCache = Depends(get_rate_cache),
):
    return {
        "status": "ok",
        "version": settings.version,
        "rate_provider": settings.exchange_rate_provider,
        "cached_pairs": len(rates.entries()),
    }
