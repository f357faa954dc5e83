"""
Scoring conversion between rulesets.

Predictions arrive in the provider's scoring basis (official Fantasy Premier
League rules). Each position gets a multiplier comparing four categories of
the league's ruleset against FPL:

    base = sum(w_c * |target_c|) / sum(w_c * |source_c|)
    multiplier = clamp(base * correction[position], 0.6, 1.5)

Category weights: goals 0.4, assists 0.3, clean sheets 0.2, cards 0.1.
Values are accumulated in full precision and only rounded at the API
boundary.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional

from fantasy_hub.models import (
    POSITIONS,
    ConversionRatio,
    ConvertedGameweek,
    ConvertedPrediction,
    GameweekPrediction,
    Position,
    PredictedPlayer,
    PredictionSource,
)

logger = logging.getLogger(__name__)


CATEGORY_WEIGHTS = {
    "goals": 0.4,
    "assists": 0.3,
    "clean_sheets": 0.2,
    "cards": 0.1,
}

# Attacking output is more sensitive to rule differences
POSITION_CORRECTION = {
    Position.GK: 0.8,
    Position.DEF: 0.9,
    Position.MID: 1.0,
    Position.FWD: 1.1,
}

MIN_RATIO = 0.6
MAX_RATIO = 1.5

DEFAULT_SEASON_LENGTH = 38

# FPL scoring, the basis of the provider's predictions (category -> position -> points)
SOURCE_RULESET: Dict[str, Dict[Position, float]] = {
    "goals": {Position.GK: 6, Position.DEF: 6, Position.MID: 5, Position.FWD: 4},
    "assists": {Position.GK: 3, Position.DEF: 3, Position.MID: 3, Position.FWD: 3},
    "clean_sheets": {Position.GK: 4, Position.DEF: 4, Position.MID: 1, Position.FWD: 0},
    "yellow_cards": {Position.GK: -1, Position.DEF: -1, Position.MID: -1, Position.FWD: -1},
    "red_cards": {Position.GK: -3, Position.DEF: -3, Position.MID: -3, Position.FWD: -3},
}

# Used when the league's live scoring settings cannot be fetched
DEFAULT_TARGET_RULESET: Dict[str, Dict[Position, float]] = {
    "goals": {Position.GK: 10, Position.DEF: 8, Position.MID: 6, Position.FWD: 5},
    "assists": {Position.GK: 4, Position.DEF: 4, Position.MID: 4, Position.FWD: 4},
    "clean_sheets": {Position.GK: 5, Position.DEF: 4, Position.MID: 1, Position.FWD: 0},
    "yellow_cards": {Position.GK: -1, Position.DEF: -1, Position.MID: -1, Position.FWD: -1},
    "red_cards": {Position.GK: -3, Position.DEF: -3, Position.MID: -3, Position.FWD: -3},
}

# Sleeper scoring_settings keys for each category, first present wins
SCORING_SETTING_KEYS = {
    "goals": ("goal", "goals", "goals_scored"),
    "assists": ("assist", "assists"),
    "clean_sheets": ("clean_sheet", "cs", "clean_sheets"),
    "yellow_cards": ("yellow_card", "yc", "yellow_cards"),
    "red_cards": ("red_card", "rc", "red_cards"),
}

# Per-position key prefixes some leagues use (e.g. "gk_clean_sheet")
POSITION_KEY_PREFIXES = {
    Position.GK: ("gk_", "gkp_"),
    Position.DEF: ("def_", "d_"),
    Position.MID: ("mid_", "m_"),
    Position.FWD: ("fwd_", "f_"),
}


def _setting_value(settings_map: Mapping[str, Any], keys, position: Position) -> Optional[float]:
    """Look up a scoring value, preferring position-prefixed keys."""
    for prefix in POSITION_KEY_PREFIXES[position]:
        for key in keys:
            value = settings_map.get(prefix + key)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return float(value)
    for key in keys:
        value = settings_map.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    return None


def parse_scoring_settings(scoring_settings: Mapping[str, Any]) -> Dict[str, Dict[Position, float]]:
    """
    Turn a flat Sleeper ``scoring_settings`` mapping into a
    category -> position -> points table. Categories missing upstream are
    left out.
    """
    table: Dict[str, Dict[Position, float]] = {}
    for category, keys in SCORING_SETTING_KEYS.items():
        per_position = {}
        for position in POSITIONS:
            value = _setting_value(scoring_settings, keys, position)
            if value is not None:
                per_position[position] = value
        if per_position:
            table[category] = per_position
    return table


def _category_value(table: Mapping[str, Mapping[Any, float]], category: str, position: Position) -> Optional[float]:
    """Absolute value of one comparison category; cards fold yellow and red together."""

    def lookup(name: str) -> Optional[float]:
        row = table.get(name)
        if not row:
            return None
        value = row.get(position)
        if value is None:
            value = row.get(position.value)
        return None if value is None else float(value)

    if category == "cards":
        if "cards" in table:
            value = lookup("cards")
            return None if value is None else abs(value)
        yellow = lookup("yellow_cards")
        red = lookup("red_cards")
        if yellow is None and red is None:
            return None
        return abs(yellow or 0.0) + abs(red or 0.0)

    value = lookup(category)
    return None if value is None else abs(value)


def clamp_ratio(value: float) -> float:
    return max(MIN_RATIO, min(MAX_RATIO, value))


def build_ratio(
    position: Position,
    source_table: Mapping[str, Mapping[Any, float]],
    target_table: Mapping[str, Mapping[Any, float]],
    degraded: bool = False,
) -> ConversionRatio:
    """Compute one position's conversion ratio from two weight tables."""
    breakdown: Dict[str, float] = {}
    source_values: Dict[str, float] = {}
    target_values: Dict[str, float] = {}
    weighted_target = 0.0
    weighted_source = 0.0

    for category, weight in CATEGORY_WEIGHTS.items():
        source_value = _category_value(source_table, category, position)
        target_value = _category_value(target_table, category, position)
        if source_value is not None:
            source_values[category] = source_value
        if target_value is not None:
            target_values[category] = target_value

        # A category missing (or worth nothing) on either side counts as 1.0
        if not source_value or not target_value:
            breakdown[category] = 1.0
            continue

        breakdown[category] = target_value / source_value
        weighted_target += weight * target_value
        weighted_source += weight * source_value

    base_ratio = weighted_target / weighted_source if weighted_source > 0 else 1.0
    correction = POSITION_CORRECTION[position]
    multiplier = clamp_ratio(base_ratio * correction)

    return ConversionRatio(
        position=position,
        multiplier=multiplier,
        base_ratio=base_ratio,
        correction=correction,
        breakdown=breakdown,
        source_values=source_values,
        target_values=target_values,
        degraded=degraded,
    )


def resolve_gameweek_predictions(predictions: List[GameweekPrediction]) -> List[GameweekPrediction]:
    """
    Collapse records to one per gameweek, sorted by gameweek.

    A settled result replaces a forecast for the same gameweek; otherwise the
    last record seen wins.
    """
    resolved: Dict[int, GameweekPrediction] = {}
    for record in predictions:
        existing = resolved.get(record.gameweek)
        if (
            existing is not None
            and existing.source == PredictionSource.RESULT
            and record.source != PredictionSource.RESULT
        ):
            continue
        resolved[record.gameweek] = record
    return [resolved[gw] for gw in sorted(resolved)]


def assess_conversion_quality(original_points: Optional[float], converted_points: Optional[float]) -> str:
    """Label how far a conversion moved a player's season value."""
    if not original_points or not converted_points:
        return "No Data"

    ratio = converted_points / original_points

    if 0.8 <= ratio <= 1.5:
        return "Good"
    if 0.6 <= ratio <= 2.0:
        return "Fair"
    return "Poor"


class ScoreConverter:
    """Builds per-position conversion ratios and converts predictions."""

    def __init__(self, source_ruleset: Optional[Mapping[str, Mapping[Any, float]]] = None):
        self.source_ruleset = source_ruleset or SOURCE_RULESET

    def build_ratios(
        self,
        target_weights: Optional[Mapping[str, Mapping[Any, float]]],
    ) -> Dict[Position, ConversionRatio]:
        """
        Build the ratio for every position.

        ``target_weights`` of None means the league's ruleset was unavailable:
        the default table is used and every ratio is flagged degraded.
        """
        degraded = not target_weights
        if degraded:
            logger.warning("Target ruleset unavailable, converting with default weights")
        table = DEFAULT_TARGET_RULESET if degraded else target_weights

        ratios = {
            position: build_ratio(position, self.source_ruleset, table, degraded=degraded)
            for position in POSITIONS
        }
        logger.info(
            "Conversion ratios: %s",
            {p.value: round(r.multiplier, 3) for p, r in ratios.items()},
        )
        return ratios

    def convert(
        self,
        predicted_player: PredictedPlayer,
        ratio: ConversionRatio,
        current_gameweek: Optional[int] = None,
        season_length: int = DEFAULT_SEASON_LENGTH,
    ) -> ConvertedPrediction:
        """Convert a player's per-gameweek and season predictions."""
        multiplier = ratio.multiplier
        resolved = resolve_gameweek_predictions(predicted_player.predictions)

        per_gameweek = [
            ConvertedGameweek(
                gameweek=record.gameweek,
                points=record.points * multiplier,
                raw_points=record.points,
                minutes=record.minutes,
                source=record.source,
            )
            for record in resolved
        ]

        if per_gameweek:
            season_total = sum(gw.points for gw in per_gameweek)
        else:
            season_total = max(predicted_player.season_prediction, 0.0) * multiplier

        season_average = season_total / season_length if season_length > 0 else 0.0

        current = self.lookup_gameweek(per_gameweek, current_gameweek)
        following = self.lookup_gameweek(
            per_gameweek, current_gameweek + 1 if current_gameweek is not None else None
        )

        minutes = [gw.minutes for gw in per_gameweek if gw.minutes]
        avg_minutes = sum(minutes) / len(minutes) if minutes else None

        return ConvertedPrediction(
            current_gameweek=current,
            next_gameweek=following,
            season_total=season_total,
            season_average=season_average,
            per_gameweek=per_gameweek,
            avg_predicted_minutes=avg_minutes,
        )

    @staticmethod
    def lookup_gameweek(per_gameweek: List[ConvertedGameweek], gameweek: Optional[int]) -> float:
        """Points for ``gameweek``, else the nearest later gameweek, else 0."""
        if gameweek is None or not per_gameweek:
            return 0.0
        later = [gw for gw in per_gameweek if gw.gameweek >= gameweek]
        if not later:
            return 0.0
        # per_gameweek is sorted, so the first later record is the exact or nearest one
        return later[0].points
