from datetime import datetime
from typing import Optional, List, Dict
from pydantic import BaseModel, Field


class IntegrationRequest(BaseModel):
    force_refresh: bool = False
    ruleset: Optional[str] = None
    gameweek: Optional[int] = Field(default=None, ge=1)


class EnrichedPlayerResponse(BaseModel):
    player_id: str
    name: str
    team: str
    owner: str
    is_available: bool
    position: str
    position_degraded: bool = False
    cross_ref_id: Optional[str] = None
    is_enhanced: bool = False
    current_gw_points: float = 0
    next_gw_points: float = 0
    season_total_points: float = 0
    season_avg_points: float = 0
    gameweek_points: Dict[int, float] = {}
    avg_predicted_minutes: Optional[float] = None
    ratio_applied: Optional[float] = None
    source_season_prediction: Optional[float] = None
    source_ratio_breakdown: Dict[str, float] = {}
    provider_id: Optional[str] = None
    match_confidence: Optional[str] = None
    match_method: Optional[str] = None
    conversion_quality: str = "No Data"
    enhancement_error: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    injury_status: Optional[str] = None
    price: Optional[float] = None


class ConversionRatioResponse(BaseModel):
    position: str
    multiplier: float
    base_ratio: float
    correction: float
    breakdown: Dict[str, float] = {}
    source_values: Dict[str, float] = {}
    target_values: Dict[str, float] = {}
    degraded: bool = False


class IntegrationMetadata(BaseModel):
    ruleset: str
    gameweek: Optional[int] = None
    stage: str
    cached: bool = False
    generated_at: datetime
    total: int
    matched: int
    unmatched: int
    enhanced: int
    enhancement_errors: int
    match_rate: float
    average_confidence: float
    ambiguous_matches: int
    by_method: Dict[str, int] = {}
    by_confidence: Dict[str, int] = {}
    duplicate_cross_refs: Dict[str, List[str]] = {}
    position_distribution: Dict[str, int] = {}
    roster_source_count: int = 0
    prediction_source_count: int = 0
    conversion_degraded: bool = False
    ratios: Dict[str, ConversionRatioResponse] = {}


class IntegrationResponse(BaseModel):
    players: List[EnrichedPlayerResponse]
    metadata: IntegrationMetadata


class IntegrationErrorDetail(BaseModel):
    kind: str
    message: str
    source: Optional[str] = None
    failed_stage: Optional[str] = None


class IntegrationErrorResponse(BaseModel):
    detail: IntegrationErrorDetail


class CacheStatsResponse(BaseModel):
    total_entries: int
    by_class: Dict[str, int] = {}
    hits: int = 0
    misses: int = 0
    hit_rate: float = 0
    oldest_entry_age: Optional[float] = None
    newest_entry_age: Optional[float] = None


class CacheClearResponse(BaseModel):
    removed: int
    prefix: Optional[str] = None
