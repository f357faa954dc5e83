from typing import Optional
from fastapi import APIRouter, Depends

from fantasy_hub.dependencies import get_cache_service
from fantasy_hub.schemas.integration import CacheClearResponse, CacheStatsResponse
from fantasy_hub.services.cache_service import CacheService

router = APIRouter()


@router.get("/stats", response_model=CacheStatsResponse)
async def get_cache_stats(cache: CacheService = Depends(get_cache_service)):
    return CacheStatsResponse(**cache.get_stats())


@router.delete("", response_model=CacheClearResponse)
async def clear_cache(
    prefix: Optional[str] = None,
    cache: CacheService = Depends(get_cache_service),
):
    """Drop cached entries; everything unless a key prefix is given."""
    if prefix:
        return CacheClearResponse(removed=cache.invalidate_prefix(prefix), prefix=prefix)
    removed = len(cache)
    cache.clear()
    return CacheClearResponse(removed=removed)
