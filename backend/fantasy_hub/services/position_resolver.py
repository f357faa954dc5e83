"""
Position resolution.

The league platform is the system of record for where a manager plays a
player, so its signals win over the prediction provider's classification.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional

from fantasy_hub.models import Position

logger = logging.getLogger(__name__)


# Single-letter roster codes
SHORT_CODES = {
    "G": Position.GK,
    "D": Position.DEF,
    "M": Position.MID,
    "F": Position.FWD,
}

# Checked by substring, in order
LONG_FORM_ALIASES = [
    (("GOALKEEPER", "KEEPER", "GKP", "GK"), Position.GK),
    (("DEFENDER", "DEF"), Position.DEF),
    (("MIDFIELDER", "MID"), Position.MID),
    (("FORWARD", "STRIKER", "FWD", "ST"), Position.FWD),
]

PROVIDER_POSITION_CODES = {
    1: Position.GK,
    2: Position.DEF,
    3: Position.MID,
    4: Position.FWD,
}

DEFAULT_POSITION = Position.MID

SOURCE_ROSTER_LIST = "roster_positions"
SOURCE_ROSTER_STRING = "roster_position"
SOURCE_PROVIDER_CODE = "provider_position_code"
SOURCE_DEFAULT = "default"


@dataclass(frozen=True)
class PositionResolution:
    position: Position
    source: str
    degraded: bool = False


def map_position_alias(value: Any) -> Optional[Position]:
    """Map a roster-side position code or name to a Position, or None."""
    if value is None:
        return None
    code = str(value).strip().upper()
    if not code:
        return None
    if code in SHORT_CODES:
        return SHORT_CODES[code]
    for needles, position in LONG_FORM_ALIASES:
        if any(needle in code for needle in needles):
            return position
    return None


def map_provider_code(value: Any) -> Optional[Position]:
    """Map the provider's numeric classification (int or numeric string)."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return PROVIDER_POSITION_CODES.get(int(str(value).strip()))
    except ValueError:
        return None


class PositionResolver:
    """Derives one canonical position from a player record of either source."""

    def resolve(self, player: Any, provider_code: Any = None) -> PositionResolution:
        """
        Resolve the canonical position. Never raises.

        Signals are read from ``positions`` (ordered list), ``position``
        (single string) and ``position_code`` attributes; ``provider_code``
        supplies the provider classification for a roster player that has
        been matched.
        """
        positions = getattr(player, "positions", None) or []
        if positions:
            mapped = map_position_alias(positions[0])
            if mapped:
                return PositionResolution(mapped, SOURCE_ROSTER_LIST)

        single = getattr(player, "position", None)
        if single:
            mapped = map_position_alias(single)
            if mapped:
                return PositionResolution(mapped, SOURCE_ROSTER_STRING)

        code = provider_code if provider_code is not None else getattr(player, "position_code", None)
        mapped = map_provider_code(code)
        if mapped:
            return PositionResolution(mapped, SOURCE_PROVIDER_CODE)

        logger.warning(
            "No usable position signal for %s, defaulting to %s",
            getattr(player, "name", "unknown player"),
            DEFAULT_POSITION.value,
        )
        return PositionResolution(DEFAULT_POSITION, SOURCE_DEFAULT, degraded=True)

    def resolve_position(self, player: Any, provider_code: Any = None) -> Position:
        return self.resolve(player, provider_code).position
