"""Canonical player shapes produced by the source adapters."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union


UNOWNED = "Free Agent"


class Position(str, Enum):
    GK = "GK"
    DEF = "DEF"
    MID = "MID"
    FWD = "FWD"


POSITIONS = [Position.GK, Position.DEF, Position.MID, Position.FWD]


class PredictionSource(str, Enum):
    FORECAST = "forecast"  # forward-looking prediction
    RESULT = "result"      # settled gameweek, ground truth once available


@dataclass
class RosterPlayer:
    """A player as known by the league platform."""
    player_id: str
    name: str
    team: str = ""
    positions: List[str] = field(default_factory=list)  # ordered, most authoritative first
    position: Optional[str] = None
    owner: str = UNOWNED
    cross_ref_id: Optional[str] = None  # Opta id
    first_name: str = ""
    last_name: str = ""
    injury_status: Optional[str] = None

    @property
    def is_available(self) -> bool:
        return self.owner == UNOWNED


@dataclass(frozen=True)
class GameweekPrediction:
    gameweek: int
    points: float
    minutes: float = 0.0
    source: PredictionSource = PredictionSource.FORECAST


@dataclass
class PredictedPlayer:
    """A player as known by the prediction provider."""
    provider_id: str
    name: str
    team: str = ""
    position_code: Optional[Union[int, str]] = None  # 1=GK, 2=DEF, 3=MID, 4=FWD
    cross_ref_id: Optional[str] = None
    predictions: List[GameweekPrediction] = field(default_factory=list)
    season_prediction: float = 0.0
    price: Optional[float] = None
