from fantasy_hub.schemas.integration import (
    IntegrationRequest,
    EnrichedPlayerResponse,
    ConversionRatioResponse,
    IntegrationMetadata,
    IntegrationResponse,
    IntegrationErrorDetail,
    IntegrationErrorResponse,
    CacheStatsResponse,
    CacheClearResponse,
)

__all__ = [
    "IntegrationRequest",
    "EnrichedPlayerResponse",
    "ConversionRatioResponse",
    "IntegrationMetadata",
    "IntegrationResponse",
    "IntegrationErrorDetail",
    "IntegrationErrorResponse",
    "CacheStatsResponse",
    "CacheClearResponse",
]
