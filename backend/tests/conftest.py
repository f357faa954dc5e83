"""
Pytest fixtures for Fantasy Hub integration tests.
"""
import asyncio
import pytest
from typing import List, Optional

from fantasy_hub.errors import SourceUnavailableError
from fantasy_hub.models import (
    UNOWNED,
    GameweekPrediction,
    PredictedPlayer,
    PredictionSource,
    RosterPlayer,
)
from fantasy_hub.services.cache_service import CacheService


class FakeClock:
    """Controllable clock for TTL tests."""
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeLeagueSource:
    """Stand-in for SleeperService with canned responses."""
    def __init__(
        self,
        players: Optional[List[RosterPlayer]] = None,
        scoring_settings: Optional[dict] = None,
        error: Optional[Exception] = None,
        scoring_error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self.league_id = "test-league"
        self.players = players or []
        self.scoring_settings = scoring_settings or {}
        self.error = error
        self.scoring_error = scoring_error
        self.delay = delay
        self.roster_calls = 0
        self.scoring_calls = 0
        self.cancelled = False

    async def fetch_roster_players(self) -> List[RosterPlayer]:
        self.roster_calls += 1
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error:
            raise self.error
        return list(self.players)

    async def fetch_scoring_settings(self) -> dict:
        self.scoring_calls += 1
        if self.scoring_error:
            raise self.scoring_error
        return dict(self.scoring_settings)

    async def close(self) -> None:
        pass


class FakePredictionSource:
    """Stand-in for PredictionService with canned responses."""
    def __init__(
        self,
        players: Optional[List[PredictedPlayer]] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self.players = players or []
        self.error = error
        self.delay = delay
        self.calls = 0

    async def fetch_predicted_players(self) -> List[PredictedPlayer]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return list(self.players)

    async def close(self) -> None:
        pass


@pytest.fixture
def roster_player_factory():
    """Factory fixture for creating roster players with custom attributes."""
    counter = {"n": 0}

    def _create(**kwargs) -> RosterPlayer:
        counter["n"] += 1
        defaults = dict(
            player_id=f"s{counter['n']}",
            name="Test Player",
            team="ARS",
            positions=["M"],
            owner=UNOWNED,
        )
        defaults.update(kwargs)
        return RosterPlayer(**defaults)
    return _create


@pytest.fixture
def predicted_player_factory():
    """Factory fixture for creating predicted players with custom attributes."""
    counter = {"n": 0}

    def _create(**kwargs) -> PredictedPlayer:
        counter["n"] += 1
        defaults = dict(
            provider_id=f"f{counter['n']}",
            name="Test Player",
            team="ARS",
            position_code=3,
            season_prediction=100.0,
        )
        defaults.update(kwargs)
        return PredictedPlayer(**defaults)
    return _create


@pytest.fixture
def forecast():
    """Build a FORECAST gameweek record."""
    def _create(gameweek: int, points: float, minutes: float = 90.0) -> GameweekPrediction:
        return GameweekPrediction(gameweek, points, minutes, PredictionSource.FORECAST)
    return _create


@pytest.fixture
def result_record():
    """Build a settled RESULT gameweek record."""
    def _create(gameweek: int, points: float, minutes: float = 90.0) -> GameweekPrediction:
        return GameweekPrediction(gameweek, points, minutes, PredictionSource.RESULT)
    return _create


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return CacheService(clock=clock)


@pytest.fixture
def source_down():
    return SourceUnavailableError("connection refused", source="ffh")
