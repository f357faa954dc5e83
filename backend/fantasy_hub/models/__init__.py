from fantasy_hub.models.player import (
    UNOWNED,
    POSITIONS,
    Position,
    PredictionSource,
    RosterPlayer,
    GameweekPrediction,
    PredictedPlayer,
)
from fantasy_hub.models.match import (
    METHOD_CROSS_REFERENCE,
    METHOD_NAME_TEAM,
    METHOD_NO_MATCH,
    Confidence,
    MatchResult,
    MatchReport,
)
from fantasy_hub.models.conversion import (
    ConversionRatio,
    ConvertedGameweek,
    ConvertedPrediction,
    EnrichedPlayer,
)

__all__ = [
    "UNOWNED",
    "POSITIONS",
    "Position",
    "PredictionSource",
    "RosterPlayer",
    "GameweekPrediction",
    "PredictedPlayer",
    "METHOD_CROSS_REFERENCE",
    "METHOD_NAME_TEAM",
    "METHOD_NO_MATCH",
    "Confidence",
    "MatchResult",
    "MatchReport",
    "ConversionRatio",
    "ConvertedGameweek",
    "ConvertedPrediction",
    "EnrichedPlayer",
]
