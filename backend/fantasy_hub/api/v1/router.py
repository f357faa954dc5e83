from fastapi import APIRouter

from fantasy_hub.api.v1 import integration, cache

api_router = APIRouter()

api_router.include_router(integration.router, prefix="/integration", tags=["integration"])
api_router.include_router(cache.router, prefix="/cache", tags=["cache"])
