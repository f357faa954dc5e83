"""
Tests for IntegrationService: fail-fast fetching, caching, degraded
conversion and per-player error isolation.
"""
import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from conftest import FakeLeagueSource, FakePredictionSource
from fantasy_hub.errors import (
    EmptyDataError,
    NoUsablePredictionsError,
    SourceUnavailableError,
)
from fantasy_hub.models import METHOD_CROSS_REFERENCE, METHOD_NO_MATCH, Position
from fantasy_hub.services.identity_matcher import IdentityMatcher
from fantasy_hub.services.integration_service import (
    IntegrationService,
    IntegrationStage,
)
from fantasy_hub.services.score_converter import ScoreConverter


LEAGUE_SCORING = {"goal": 5, "assist": 3, "clean_sheet": 1, "yellow_card": -1, "red_card": -3}


@pytest.fixture
def roster(roster_player_factory):
    return [
        roster_player_factory(player_id="s1", name="Bukayo Saka", team="ARS", positions=["M"], cross_ref_id="X1", owner="Manager One"),
        roster_player_factory(player_id="s2", name="J. Doe", team="XYZ", positions=["F"]),
        roster_player_factory(player_id="s3", name="Unknown Youngster", team="ARS", positions=["D"]),
    ]


@pytest.fixture
def predictions(predicted_player_factory, forecast):
    return [
        predicted_player_factory(
            provider_id="f1", name="Saka", team="ARS", position_code=3, cross_ref_id="X1",
            predictions=[forecast(4, 6.0), forecast(5, 5.0)], season_prediction=180.0,
        ),
        predicted_player_factory(
            provider_id="f2", name="John Doe", team="XYZ", position_code=4,
            predictions=[forecast(4, 4.0), forecast(5, 3.0)], season_prediction=120.0,
        ),
    ]


def _service(league, provider, cache, **kwargs) -> IntegrationService:
    return IntegrationService(
        league_source=league,
        prediction_source=provider,
        matcher=IdentityMatcher(),
        converter=ScoreConverter(),
        cache=cache,
        source_timeout=kwargs.pop("source_timeout", 1.0),
        current_gameweek=kwargs.pop("current_gameweek", None),
        **kwargs,
    )


class TestConstruction:
    def test_missing_dependency_raises(self, cache):
        with pytest.raises(ValueError, match="matcher"):
            IntegrationService(
                league_source=FakeLeagueSource(),
                prediction_source=FakePredictionSource(),
                matcher=None,
                converter=ScoreConverter(),
                cache=cache,
            )


class TestRun:
    @pytest.mark.asyncio
    async def test_happy_path(self, roster, predictions, cache):
        service = _service(FakeLeagueSource(roster, LEAGUE_SCORING), FakePredictionSource(predictions), cache)

        result = await service.run()

        assert result.stage == IntegrationStage.CACHED
        assert result.cached is False
        assert [p.player_id for p in result.players] == ["s1", "s2", "s3"]
        assert result.total == 3
        assert result.matched == 2
        assert result.unmatched == 1
        assert result.gameweek == 4  # earliest forecast
        assert result.conversion_degraded is False

        saka, doe, unknown = result.players
        assert saka.is_enhanced
        assert saka.match_confidence == "High"
        assert saka.match_method == METHOD_CROSS_REFERENCE
        assert saka.owner == "Manager One"
        assert saka.is_available is False
        assert saka.canonical_position == Position.MID
        assert saka.current_gw_points == pytest.approx(6.0 * result.ratios[Position.MID].multiplier, abs=0.01)
        assert saka.gameweek_points.keys() == {4, 5}

        assert doe.match_confidence == "Medium"
        assert doe.canonical_position == Position.FWD

        assert unknown.is_enhanced is False
        assert unknown.match_method == METHOD_NO_MATCH
        assert unknown.season_total_points == 0.0
        assert unknown.canonical_position == Position.DEF

        assert result.position_distribution == {"GK": 0, "DEF": 1, "MID": 1, "FWD": 1}

    @pytest.mark.asyncio
    async def test_result_is_cached(self, roster, predictions, cache):
        league = FakeLeagueSource(roster, LEAGUE_SCORING)
        provider = FakePredictionSource(predictions)
        service = _service(league, provider, cache)

        first = await service.run()
        second = await service.run()

        assert second.cached is True
        assert second.players == first.players
        assert provider.calls == 1
        assert league.roster_calls == 1

    @pytest.mark.asyncio
    async def test_force_refresh_bypasses_reads_but_writes(self, roster, predictions, cache):
        league = FakeLeagueSource(roster, LEAGUE_SCORING)
        provider = FakePredictionSource(predictions)
        service = _service(league, provider, cache)

        await service.run()
        refreshed = await service.run(force_refresh=True)
        after = await service.run()

        assert refreshed.cached is False
        assert provider.calls == 2
        assert league.scoring_calls == 2
        assert after.cached is True
        assert after.generated_at == refreshed.generated_at

    @pytest.mark.asyncio
    async def test_explicit_gameweek(self, roster, predictions, cache):
        service = _service(FakeLeagueSource(roster, LEAGUE_SCORING), FakePredictionSource(predictions), cache)

        result = await service.run(gameweek=5)

        saka = result.players[0]
        assert result.gameweek == 5
        assert saka.current_gw_points == pytest.approx(5.0 * result.ratios[Position.MID].multiplier, abs=0.01)
        assert saka.next_gw_points == 0.0

    @pytest.mark.asyncio
    async def test_unknown_ruleset(self, roster, predictions, cache):
        service = _service(FakeLeagueSource(roster), FakePredictionSource(predictions), cache)

        with pytest.raises(ValueError):
            await service.run(ruleset="made-up")

    @pytest.mark.asyncio
    async def test_source_ruleset_is_identity_before_correction(self, roster, predictions, cache):
        league = FakeLeagueSource(roster, LEAGUE_SCORING)
        service = _service(league, FakePredictionSource(predictions), cache)

        result = await service.run(ruleset="fpl")

        assert result.ratios[Position.MID].multiplier == pytest.approx(1.0)
        assert league.scoring_calls == 0


class TestFailures:
    @pytest.mark.asyncio
    async def test_empty_provider_data_fails(self, roster, cache):
        """Zero predicted players fails the run with no partial output."""
        service = _service(FakeLeagueSource(roster), FakePredictionSource([]), cache)

        with pytest.raises(EmptyDataError) as exc_info:
            await service.run()

        assert exc_info.value.stage == IntegrationStage.FETCH_SOURCES
        assert cache.get("merged-players:league:auto") is None

    @pytest.mark.asyncio
    async def test_first_failure_cancels_other_fetch(self, predictions, cache, source_down):
        """A failed provider fetch cancels the slow roster fetch."""
        league = FakeLeagueSource([], delay=5.0)
        provider = FakePredictionSource(predictions, error=source_down)
        service = _service(league, provider, cache, source_timeout=10.0)

        with pytest.raises(SourceUnavailableError):
            await service.run()
        await asyncio.sleep(0.05)

        assert league.cancelled is True

    @pytest.mark.asyncio
    async def test_timeout_is_source_unavailable(self, roster, predictions, cache):
        service = _service(
            FakeLeagueSource(roster),
            FakePredictionSource(predictions, delay=1.0),
            cache,
            source_timeout=0.05,
        )

        with pytest.raises(SourceUnavailableError) as exc_info:
            await service.run()
        assert exc_info.value.source == "ffh"

    @pytest.mark.asyncio
    async def test_untyped_adapter_error_is_wrapped(self, roster, predictions, cache):
        service = _service(
            FakeLeagueSource(roster, error=KeyError("players")),
            FakePredictionSource(predictions),
            cache,
        )

        with pytest.raises(SourceUnavailableError) as exc_info:
            await service.run()
        assert exc_info.value.source == "sleeper"

    @pytest.mark.asyncio
    async def test_no_usable_predictions(self, roster, predicted_player_factory, cache):
        stranger = predicted_player_factory(name="Someone Else", team="ZZZ", season_prediction=50.0)
        service = _service(FakeLeagueSource(roster), FakePredictionSource([stranger]), cache)

        with pytest.raises(NoUsablePredictionsError) as exc_info:
            await service.run()
        assert exc_info.value.stage == IntegrationStage.ASSEMBLE

    @pytest.mark.asyncio
    async def test_ruleset_failure_degrades(self, roster, predictions, cache, source_down):
        league = FakeLeagueSource(roster, scoring_error=source_down)
        service = _service(league, FakePredictionSource(predictions), cache)

        result = await service.run()

        assert result.conversion_degraded is True
        assert all(r.degraded for r in result.ratios.values())
        assert result.enhanced == 2

    @pytest.mark.asyncio
    async def test_untyped_ruleset_error_degrades(self, roster, predictions, cache):
        league = FakeLeagueSource(roster, scoring_error=RuntimeError("boom"))
        service = _service(league, FakePredictionSource(predictions), cache)

        result = await service.run()

        assert result.conversion_degraded is True
        assert result.stage == IntegrationStage.CACHED

    @pytest.mark.asyncio
    async def test_non_object_scoring_settings_degrades(self, roster, predictions, cache):
        league = FakeLeagueSource(roster)
        service = _service(league, FakePredictionSource(predictions), cache)

        with patch.object(league, "fetch_scoring_settings", AsyncMock(return_value=[{"goal": 5}])):
            result = await service.run()

        assert result.conversion_degraded is True
        assert all(r.degraded for r in result.ratios.values())

    @pytest.mark.asyncio
    async def test_degraded_ratios_not_kept_long(self, roster, predictions, cache, clock, source_down):
        league = FakeLeagueSource(roster, scoring_error=source_down)
        service = _service(league, FakePredictionSource(predictions), cache)
        await service.run()

        clock.advance(301)
        league.scoring_error = None
        league.scoring_settings = LEAGUE_SCORING
        result = await service.run(force_refresh=False)

        assert result.conversion_degraded is False

    @pytest.mark.asyncio
    async def test_one_bad_player_does_not_sink_run(self, roster, predictions, cache):
        service = _service(FakeLeagueSource(roster, LEAGUE_SCORING), FakePredictionSource(predictions), cache)
        real_convert = service.converter.convert

        def flaky_convert(predicted_player, ratio, *args, **kwargs):
            if predicted_player.provider_id == "f2":
                raise ZeroDivisionError("bad record in /srv/app/x.py")
            return real_convert(predicted_player, ratio, *args, **kwargs)

        with patch.object(service.converter, "convert", side_effect=flaky_convert):
            result = await service.run()

        saka, doe, _ = result.players
        assert saka.is_enhanced is True
        assert doe.is_enhanced is False
        assert "bad record" in doe.enhancement_error
        assert "/srv/app" not in doe.enhancement_error
        assert result.enhancement_errors == 1


class TestMatchCache:
    @pytest.mark.asyncio
    async def test_matches_reused_across_result_expiry(self, roster, predictions, cache, clock):
        league = FakeLeagueSource(roster, LEAGUE_SCORING)
        service = _service(league, FakePredictionSource(predictions), cache)
        first = await service.run()

        # Result, roster and prediction entries expire; the match snapshot does not
        clock.advance(700)
        with patch.object(service.matcher, "match_all") as match_all:
            second = await service.run()

        match_all.assert_not_called()
        assert second.cached is False
        assert [p.match_method for p in second.players] == [p.match_method for p in first.players]
        assert second.matched == first.matched

    def test_fingerprint_ignores_ownership(self, roster, predictions):
        before = IntegrationService.match_fingerprint(roster, predictions)
        roster[2].owner = "New Manager"
        assert IntegrationService.match_fingerprint(roster, predictions) == before
