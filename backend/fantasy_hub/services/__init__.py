# Services module
from fantasy_hub.services.cache_service import CacheService
from fantasy_hub.services.sleeper_service import SleeperService
from fantasy_hub.services.prediction_service import PredictionService
from fantasy_hub.services.position_resolver import PositionResolver
from fantasy_hub.services.identity_matcher import IdentityMatcher
from fantasy_hub.services.score_converter import ScoreConverter
from fantasy_hub.services.integration_service import IntegrationService

__all__ = [
    "CacheService",
    "SleeperService",
    "PredictionService",
    "PositionResolver",
    "IdentityMatcher",
    "ScoreConverter",
    "IntegrationService",
]
