"""
Fantasy Football Hub prediction-provider adapter.

FFH player records come in several shapes (flat or with a nested ``player``
object, ids under ``fpl_id``/``id``/``element_id``, team under
``team.code_name``/``team_short_name``/``club``). Everything is mapped to
PredictedPlayer right after the fetch.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx

from fantasy_hub.config import settings
from fantasy_hub.errors import EmptyDataError, SourceUnavailableError
from fantasy_hub.models import GameweekPrediction, PredictedPlayer, PredictionSource
from fantasy_hub.utils import clean_numeric_string, current_season, normalize_identifier, unwrap_collection

logger = logging.getLogger(__name__)

SOURCE_NAME = "ffh"

PREDICTIONS_PATH = "player-predictions/"


def _field(raw: Dict[str, Any], *names: str) -> Any:
    """First non-empty value among ``names``, checking a nested ``player`` object too."""
    nested = raw.get("player") if isinstance(raw.get("player"), dict) else {}
    for source in (raw, nested):
        for name in names:
            value = source.get(name)
            if value not in (None, ""):
                return value
    return None


def _points_value(value: Any) -> Optional[float]:
    """FFH sends points as a number, a numeric string, or {"predicted_pts": n}."""
    if isinstance(value, dict):
        value = value.get("predicted_pts")
    try:
        return clean_numeric_string(value)
    except (TypeError, ValueError):
        return None


class PredictionService:
    """Fantasy Football Hub API integration."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        auth_static: Optional[str] = None,
        bearer_token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        results_season: Optional[int] = None,
    ):
        self.base_url = (base_url or settings.ffh_base_url).rstrip("/")
        self.auth_static = auth_static or settings.ffh_auth_static
        self.bearer_token = bearer_token or settings.ffh_bearer_token
        self._http_client = client
        self._owns_client = client is None
        self.results_season = results_season or settings.ffh_results_season or current_season()

        if not self.auth_static or not self.bearer_token:
            logger.warning("FFH credentials not configured; prediction fetches may be rejected")

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept-Language": "en-US", "Content-Type": "application/json"}
        if self.auth_static:
            headers["Authorization"] = self.auth_static
        if self.bearer_token:
            headers["Token"] = f"Bearer {self.bearer_token}"
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=settings.source_timeout_seconds)
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client if this service created it."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None
            logger.info("PredictionService HTTP client closed")

    async def get_raw_predictions(self) -> List[Dict[str, Any]]:
        client = await self._get_client()
        params = {
            "orderBy": "points",
            "focus": "range",
            "positions": "1,2,3,4",
            "gw_start": 1,
            "gw_end": 47,
            "first": 0,
            "last": settings.ffh_max_players,
            "use_predicted_fixtures": "false",
        }
        try:
            response = await client.get(
                f"{self.base_url}/{PREDICTIONS_PATH}",
                params=params,
                headers=self._headers(),
                timeout=settings.source_timeout_seconds,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"FFH API error: {e.response.status_code}")
            raise SourceUnavailableError(
                f"FFH returned HTTP {e.response.status_code}", source=SOURCE_NAME
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Failed to reach FFH: {e}")
            raise SourceUnavailableError(f"FFH request failed: {e}", source=SOURCE_NAME) from e
        except ValueError as e:
            # HTML error pages and truncated bodies land here
            raise SourceUnavailableError("FFH returned malformed JSON", source=SOURCE_NAME) from e

        try:
            return unwrap_collection(data)
        except ValueError as e:
            raise SourceUnavailableError(str(e), source=SOURCE_NAME) from e

    async def fetch_predicted_players(self) -> List[PredictedPlayer]:
        """
        Fetch and normalize all predicted players.

        Raises:
            SourceUnavailableError: the upstream call failed
            EmptyDataError: the provider returned no usable records
        """
        raw_players = await self.get_raw_predictions()
        players = []
        for raw in raw_players:
            player = self.transform_player(raw)
            if player is not None:
                players.append(player)

        if not players:
            raise EmptyDataError("FFH returned no predicted players", source=SOURCE_NAME)

        logger.info(f"Fetched {len(players)} FFH predicted players ({len(raw_players)} raw records)")
        return players

    def transform_player(self, raw: Dict[str, Any]) -> Optional[PredictedPlayer]:
        """Map one FFH record to a PredictedPlayer (None if unusable)."""
        provider_id = normalize_identifier(_field(raw, "fpl_id", "id", "element_id"))
        name = _field(raw, "web_name", "name")
        if not name:
            first = _field(raw, "first_name") or ""
            second = _field(raw, "second_name") or ""
            name = f"{first} {second}".strip()
        if not name:
            return None
        team = self.extract_team_code(raw) or ""
        if not provider_id:
            provider_id = f"{name}_{team}"

        predictions = list(self.extract_predictions(raw.get("predictions"), PredictionSource.FORECAST))
        predictions.extend(self.extract_predictions(self._current_results(raw), PredictionSource.RESULT))

        season_prediction = _points_value(
            _field(raw, "season_prediction", "range_prediction", "predicted_pts", "total_points")
        )
        cost = _points_value(_field(raw, "now_cost", "cost"))

        return PredictedPlayer(
            provider_id=provider_id,
            name=str(name),
            team=team,
            position_code=_field(raw, "position_id", "element_type"),
            cross_ref_id=normalize_identifier(_field(raw, "opta_uuid", "opta_id")),
            predictions=predictions,
            season_prediction=season_prediction or 0.0,
            price=cost / 10 if cost else None,
        )

    @staticmethod
    def extract_team_code(raw: Dict[str, Any]) -> Optional[str]:
        team = raw.get("team")
        if isinstance(team, dict):
            code = team.get("code_name") or team.get("short_name")
            if code:
                return str(code)
        value = _field(raw, "team_short_name", "club", "team_abbr")
        if value:
            return str(value)
        if isinstance(team, str) and team:
            return team
        return None

    def _current_results(self, raw: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Settled results from ``results_season`` only."""
        results = raw.get("results") or []
        if not isinstance(results, list):
            return []
        return [
            r for r in results
            if isinstance(r, dict) and normalize_identifier(r.get("season")) == str(self.results_season)
        ]

    @staticmethod
    def extract_predictions(records: Any, source: PredictionSource) -> Iterable[GameweekPrediction]:
        """Yield one GameweekPrediction per well-formed record; skip the rest."""
        if not isinstance(records, list):
            return
        for record in records:
            if not isinstance(record, dict):
                continue
            try:
                gameweek = int(record.get("gw"))
            except (TypeError, ValueError):
                continue
            points = _points_value(record.get("predicted_pts"))
            if points is None:
                points = _points_value(record.get("points"))
            if gameweek <= 0 or points is None or points < 0:
                continue
            minutes = _points_value(record.get("predicted_mins") or record.get("xmins")) or 0.0
            yield GameweekPrediction(gameweek=gameweek, points=points, minutes=minutes, source=source)
