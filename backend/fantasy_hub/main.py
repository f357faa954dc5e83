import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi.middleware.cors import CORSMiddleware

from fantasy_hub.config import settings
from fantasy_hub.api.v1.router import api_router
from fantasy_hub.services.cache_service import CacheService
from fantasy_hub.services.identity_matcher import IdentityMatcher
from fantasy_hub.services.integration_service import IntegrationService
from fantasy_hub.services.position_resolver import PositionResolver
from fantasy_hub.services.prediction_service import PredictionService
from fantasy_hub.services.score_converter import ScoreConverter
from fantasy_hub.services.sleeper_service import SleeperService

logger = logging.getLogger(__name__)


def build_integration_service(cache: CacheService) -> IntegrationService:
    """Wire the orchestrator and its collaborators from settings."""
    return IntegrationService(
        league_source=SleeperService(),
        prediction_source=PredictionService(),
        matcher=IdentityMatcher(allow_heuristics=settings.allow_heuristic_matching),
        converter=ScoreConverter(),
        cache=cache,
        resolver=PositionResolver(),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    # Shared services live on app.state for proper lifecycle management
    app.state.cache_service = CacheService()
    app.state.integration_service = build_integration_service(app.state.cache_service)

    # --- Scheduled cache sweep ---
    cache = app.state.cache_service

    async def _scheduled_cleanup():
        removed = cache.cleanup_expired()
        if removed:
            logger.info("Cache sweep removed %d expired entries", removed)

    scheduler = AsyncIOScheduler()
    scheduler.add_job(_scheduled_cleanup, 'interval', minutes=settings.cache_cleanup_interval_minutes)
    scheduler.start()
    logger.info("Scheduler started - cache sweep every %d min", settings.cache_cleanup_interval_minutes)

    yield

    scheduler.shutdown(wait=False)
    # Shutdown - cleanup HTTP clients
    service = getattr(app.state, "integration_service", None)
    if service is not None:
        await service.league_source.close()
        await service.prediction_source.close()


app = FastAPI(
    title=settings.app_name,
    description="Merges Sleeper rosters with Fantasy Football Hub predictions converted to league scoring",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(api_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    return {"status": "healthy", "app": settings.app_name}
