"""
FastAPI dependency functions.

Services are created once in the app lifespan and live on ``app.state``;
these functions hand them to route handlers. Tests swap them out through
``app.dependency_overrides``.
"""
from fastapi import Request

from fantasy_hub.services.cache_service import CacheService
from fantasy_hub.services.integration_service import IntegrationService


def get_integration_service(request: Request) -> IntegrationService:
    """
    FastAPI dependency for IntegrationService.

    Usage:
        @router.get("/players")
        async def get_players(service: IntegrationService = Depends(get_integration_service)):
            ...
    """
    return request.app.state.integration_service


def get_cache_service(request: Request) -> CacheService:
    """FastAPI dependency for the shared CacheService."""
    return request.app.state.cache_service
