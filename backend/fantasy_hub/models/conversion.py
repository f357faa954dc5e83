from dataclasses import dataclass, field
from typing import Dict, List, Optional

from fantasy_hub.models.player import PredictionSource, Position


@dataclass(frozen=True)
class ConversionRatio:
    position: Position
    multiplier: float          # clamped final ratio
    base_ratio: float          # target / source weighted sums, before correction
    correction: float          # fixed position factor
    breakdown: Dict[str, float] = field(default_factory=dict)       # per-category sub-ratios
    source_values: Dict[str, float] = field(default_factory=dict)
    target_values: Dict[str, float] = field(default_factory=dict)
    degraded: bool = False     # built from the default target table


@dataclass(frozen=True)
class ConvertedGameweek:
    gameweek: int
    points: float
    raw_points: float
    minutes: float
    source: PredictionSource


@dataclass(frozen=True)
class ConvertedPrediction:
    """Converted projections, kept in full precision."""
    current_gameweek: float
    next_gameweek: float
    season_total: float
    season_average: float
    per_gameweek: List[ConvertedGameweek] = field(default_factory=list)
    avg_predicted_minutes: Optional[float] = None


@dataclass(frozen=True)
class EnrichedPlayer:
    """A roster player merged with converted scoring. Immutable once built."""
    player_id: str
    name: str
    team: str
    owner: str
    is_available: bool
    canonical_position: Position
    position_degraded: bool = False
    cross_ref_id: Optional[str] = None
    is_enhanced: bool = False
    current_gw_points: float = 0.0
    next_gw_points: float = 0.0
    season_total_points: float = 0.0
    season_avg_points: float = 0.0
    gameweek_points: Dict[int, float] = field(default_factory=dict)
    avg_predicted_minutes: Optional[float] = None
    ratio_applied: Optional[float] = None
    source_season_prediction: Optional[float] = None
    source_ratio_breakdown: Dict[str, float] = field(default_factory=dict)
    provider_id: Optional[str] = None
    match_confidence: Optional[str] = None
    match_method: Optional[str] = None
    conversion_quality: str = "No Data"
    enhancement_error: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    injury_status: Optional[str] = None
    price: Optional[float] = None  # provider price, millions
