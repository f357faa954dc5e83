"""
Tests for ScoreConverter ratio construction and prediction conversion.
"""
import pytest

from fantasy_hub.models import POSITIONS, Position, PredictionSource
from fantasy_hub.services.score_converter import (
    DEFAULT_TARGET_RULESET,
    MAX_RATIO,
    MIN_RATIO,
    SOURCE_RULESET,
    ScoreConverter,
    assess_conversion_quality,
    build_ratio,
    parse_scoring_settings,
    resolve_gameweek_predictions,
)


def _with_goals(position: Position, value: float) -> dict:
    """SOURCE_RULESET with one goals value changed."""
    table = {category: dict(row) for category, row in SOURCE_RULESET.items()}
    table["goals"][position] = value
    return table


@pytest.fixture
def converter():
    return ScoreConverter()


class TestBuildRatio:
    def test_identical_rulesets_leave_only_correction(self):
        ratio = build_ratio(Position.MID, SOURCE_RULESET, SOURCE_RULESET)
        assert ratio.base_ratio == pytest.approx(1.0)
        assert ratio.multiplier == pytest.approx(1.0)

    def test_forward_goal_scenario(self):
        """Source {goals: 4}, target {goals: 4.4} for FWD: base 1.1, multiplier 1.21."""
        ratio = build_ratio(
            Position.FWD,
            {"goals": {Position.FWD: 4}},
            {"goals": {Position.FWD: 4.4}},
        )

        assert ratio.base_ratio == pytest.approx(1.1)
        assert ratio.correction == 1.1
        assert ratio.multiplier == pytest.approx(1.21)

    def test_other_categories_dilute_goal_change(self):
        ratio = build_ratio(Position.FWD, SOURCE_RULESET, _with_goals(Position.FWD, 4.4))

        assert ratio.breakdown["goals"] == pytest.approx(1.1)
        assert ratio.base_ratio == pytest.approx(
            (0.4 * 4.4 + 0.3 * 3 + 0.1 * 4) / (0.4 * 4 + 0.3 * 3 + 0.1 * 4)
        )

    def test_zero_category_is_skipped(self):
        """FWD clean sheets are worth 0 in FPL; that category contributes 1.0."""
        ratio = build_ratio(Position.FWD, SOURCE_RULESET, SOURCE_RULESET)
        assert ratio.breakdown["clean_sheets"] == 1.0

    def test_cards_fold_yellow_and_red(self):
        ratio = build_ratio(Position.MID, SOURCE_RULESET, SOURCE_RULESET)
        assert ratio.source_values["cards"] == 4.0

    def test_no_usable_category_gives_base_one(self):
        ratio = build_ratio(Position.DEF, SOURCE_RULESET, {})
        assert ratio.base_ratio == 1.0
        assert ratio.multiplier == pytest.approx(0.9)

    @pytest.mark.parametrize("goal_value", [0.01, 1000.0])
    def test_multiplier_is_clamped(self, goal_value):
        target = {"goals": {p: goal_value for p in POSITIONS}}
        for position in POSITIONS:
            ratio = build_ratio(position, SOURCE_RULESET, target)
            assert MIN_RATIO <= ratio.multiplier <= MAX_RATIO

    def test_accepts_string_position_keys(self):
        target = {"goals": {"FWD": 8}}
        ratio = build_ratio(Position.FWD, SOURCE_RULESET, target)
        assert ratio.breakdown["goals"] == 2.0


class TestBuildRatios:
    def test_every_position_present(self, converter):
        ratios = converter.build_ratios(SOURCE_RULESET)
        assert set(ratios) == set(POSITIONS)
        assert not any(r.degraded for r in ratios.values())

    @pytest.mark.parametrize("target", [None, {}])
    def test_missing_target_is_degraded(self, converter, target):
        ratios = converter.build_ratios(target)

        expected = build_ratio(Position.GK, SOURCE_RULESET, DEFAULT_TARGET_RULESET)
        assert all(r.degraded for r in ratios.values())
        assert ratios[Position.GK].multiplier == pytest.approx(expected.multiplier)


class TestParseScoringSettings:
    def test_flat_settings_broadcast(self):
        table = parse_scoring_settings({"goal": 5, "assist": 3, "cs": 1, "yellow_card": -1, "red_card": -3})

        assert table["goals"] == {p: 5.0 for p in POSITIONS}
        assert table["clean_sheets"][Position.GK] == 1.0
        assert table["red_cards"][Position.FWD] == -3.0

    def test_position_prefixed_keys_win(self):
        table = parse_scoring_settings({"goal": 5, "gk_goal": 10})
        assert table["goals"][Position.GK] == 10.0
        assert table["goals"][Position.MID] == 5.0

    def test_missing_and_non_numeric_skipped(self):
        table = parse_scoring_settings({"goal": "lots", "assist": True})
        assert table == {}


class TestResolveGameweekPredictions:
    def test_result_overrides_forecast(self, forecast, result_record):
        """A RESULT for gameweek 3 replaces its FORECAST, whichever arrives first."""
        records = [forecast(3, 4.0), result_record(3, 9.0), forecast(2, 5.0)]
        resolved = resolve_gameweek_predictions(records)

        assert [(r.gameweek, r.points) for r in resolved] == [(2, 5.0), (3, 9.0)]

        resolved = resolve_gameweek_predictions([result_record(3, 9.0), forecast(3, 4.0)])
        assert resolved[0].source == PredictionSource.RESULT


class TestConvert:
    def test_season_total_sums_resolved_gameweeks(self, converter, predicted_player_factory, forecast, result_record):
        ratios = converter.build_ratios(SOURCE_RULESET)
        player = predicted_player_factory(
            position_code=3,
            predictions=[forecast(1, 5.0, 90), forecast(2, 6.0, 80), result_record(2, 2.0, 45), forecast(3, 4.0, 0)],
        )

        converted = converter.convert(player, ratios[Position.MID], current_gameweek=2)

        assert converted.season_total == pytest.approx(11.0)
        assert converted.current_gameweek == pytest.approx(2.0)
        assert converted.next_gameweek == pytest.approx(4.0)
        assert converted.season_average == pytest.approx(11.0 / 38)
        assert converted.avg_predicted_minutes == pytest.approx((90 + 45) / 2)

    def test_multiplier_applied(self, converter, predicted_player_factory, forecast):
        ratio = build_ratio(Position.FWD, SOURCE_RULESET, _with_goals(Position.FWD, 8))
        player = predicted_player_factory(predictions=[forecast(1, 10.0)])

        converted = converter.convert(player, ratio, current_gameweek=1)

        assert converted.per_gameweek[0].raw_points == 10.0
        assert converted.current_gameweek == pytest.approx(10.0 * ratio.multiplier)

    def test_season_prediction_fallback(self, converter, predicted_player_factory):
        ratio = build_ratio(Position.MID, SOURCE_RULESET, SOURCE_RULESET)
        player = predicted_player_factory(predictions=[], season_prediction=150.0)

        converted = converter.convert(player, ratio, current_gameweek=5)

        assert converted.season_total == pytest.approx(150.0)
        assert converted.current_gameweek == 0.0
        assert converted.avg_predicted_minutes is None

    def test_current_gameweek_uses_nearest_later(self, converter, predicted_player_factory, forecast):
        ratio = build_ratio(Position.MID, SOURCE_RULESET, SOURCE_RULESET)
        player = predicted_player_factory(predictions=[forecast(5, 3.0), forecast(7, 8.0)])

        converted = converter.convert(player, ratio, current_gameweek=6)

        assert converted.current_gameweek == pytest.approx(8.0)
        assert converted.next_gameweek == pytest.approx(8.0)

    def test_past_all_gameweeks_is_zero(self, converter, predicted_player_factory, forecast):
        ratio = build_ratio(Position.MID, SOURCE_RULESET, SOURCE_RULESET)
        player = predicted_player_factory(predictions=[forecast(1, 3.0)])
        assert converter.convert(player, ratio, current_gameweek=10).current_gameweek == 0.0


class TestConversionQuality:
    @pytest.mark.parametrize("original,converted,expected", [
        (100, 110, "Good"),
        (100, 70, "Fair"),
        (100, 190, "Fair"),
        (100, 300, "Poor"),
        (0, 50, "No Data"),
        (None, 50, "No Data"),
    ])
    def test_labels(self, original, converted, expected):
        assert assess_conversion_quality(original, converted) == expected
