"""
Sleeper league-platform adapter.

Fetches the player universe, league rosters and league users, and maps them
into RosterPlayer records with ownership filled in. Alternate field names are
resolved here so nothing downstream sees raw Sleeper payloads.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from fantasy_hub.config import settings
from fantasy_hub.errors import EmptyDataError, SourceUnavailableError
from fantasy_hub.models import UNOWNED, RosterPlayer
from fantasy_hub.utils import normalize_identifier, unwrap_collection

logger = logging.getLogger(__name__)

SOURCE_NAME = "sleeper"


class SleeperService:
    """Sleeper API integration for rosters, ownership and scoring settings."""

    def __init__(
        self,
        league_id: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.league_id = league_id or settings.sleeper_league_id
        self.base_url = (base_url or settings.sleeper_base_url).rstrip("/")
        self._http_client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=settings.source_timeout_seconds,
                headers={"Accept": "application/json"},
            )
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client if this service created it."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None
            logger.info("SleeperService HTTP client closed")

    async def _get_json(self, path: str, timeout: Optional[float] = None) -> Any:
        client = await self._get_client()
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            response = await client.get(url, timeout=timeout or settings.source_timeout_seconds)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Sleeper API error: {e.response.status_code} for {path}")
            raise SourceUnavailableError(
                f"Sleeper returned HTTP {e.response.status_code} for {path}", source=SOURCE_NAME
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Failed to reach Sleeper ({path}): {e}")
            raise SourceUnavailableError(f"Sleeper request failed: {e}", source=SOURCE_NAME) from e
        except ValueError as e:
            raise SourceUnavailableError(f"Sleeper returned malformed JSON for {path}", source=SOURCE_NAME) from e

    async def get_players(self) -> List[Dict[str, Any]]:
        data = await self._get_json(f"players/{settings.sleeper_sport}")
        return unwrap_collection(data, id_field="player_id")

    async def get_rosters(self) -> List[Dict[str, Any]]:
        data = await self._get_json(f"league/{self.league_id}/rosters")
        # Without rosters every player would read as unowned
        if not isinstance(data, list) or not data:
            raise EmptyDataError(f"Sleeper returned no rosters for league {self.league_id}", source=SOURCE_NAME)
        return unwrap_collection(data)

    async def get_users(self) -> List[Dict[str, Any]]:
        data = await self._get_json(f"league/{self.league_id}/users")
        return unwrap_collection(data)

    async def get_league(self) -> Dict[str, Any]:
        data = await self._get_json(f"league/{self.league_id}", timeout=settings.ruleset_timeout_seconds)
        if not isinstance(data, dict):
            raise SourceUnavailableError("Sleeper league payload is not an object", source=SOURCE_NAME)
        return data

    async def fetch_scoring_settings(self) -> Dict[str, Any]:
        """Fetch the league's live scoring settings (the target ruleset)."""
        league = await self.get_league()
        scoring = league.get("scoring_settings") or {}
        logger.info(f"Fetched Sleeper scoring settings: {len(scoring)} rules")
        return scoring

    async def fetch_roster_players(self) -> List[RosterPlayer]:
        """
        Fetch every player in the league's player universe with ownership.

        Raises:
            SourceUnavailableError: an upstream call failed
            EmptyDataError: the player universe or the league rosters came back empty
        """
        players, rosters, users = await asyncio.gather(
            self.get_players(), self.get_rosters(), self.get_users()
        )
        if not players:
            raise EmptyDataError("Sleeper returned no players", source=SOURCE_NAME)

        ownership = self.build_ownership_map(rosters, users)
        roster_players = []
        for raw in players:
            player = self.transform_player(raw, ownership)
            if player is not None:
                roster_players.append(player)

        if not roster_players:
            raise EmptyDataError("Sleeper players had no usable records", source=SOURCE_NAME)

        owned = sum(1 for p in roster_players if not p.is_available)
        logger.info(f"Fetched {len(roster_players)} Sleeper players ({owned} owned)")
        return roster_players

    @staticmethod
    def build_ownership_map(rosters: List[Dict[str, Any]], users: List[Dict[str, Any]]) -> Dict[str, str]:
        """Map player id -> owning manager's display name."""
        user_names = {
            str(user.get("user_id")): user.get("display_name") or user.get("username") or "Unknown"
            for user in users
            if user.get("user_id") is not None
        }

        ownership: Dict[str, str] = {}
        for roster in rosters:
            owner_name = user_names.get(str(roster.get("owner_id")), "Unknown")
            for player_id in roster.get("players") or []:
                ownership[str(player_id)] = owner_name
        return ownership

    @staticmethod
    def transform_player(raw: Dict[str, Any], ownership: Dict[str, str]) -> Optional[RosterPlayer]:
        """Map one Sleeper player payload to a RosterPlayer (None if unusable)."""
        player_id = normalize_identifier(raw.get("player_id") or raw.get("id"))
        if not player_id:
            return None

        first_name = raw.get("first_name") or ""
        last_name = raw.get("last_name") or ""
        name = raw.get("full_name") or raw.get("name") or f"{first_name} {last_name}".strip()
        if not name:
            return None

        fantasy_positions = raw.get("fantasy_positions")
        positions = [str(p) for p in fantasy_positions if p] if isinstance(fantasy_positions, list) else []

        return RosterPlayer(
            player_id=player_id,
            name=name,
            team=raw.get("team_abbr") or raw.get("team") or "",
            positions=positions,
            position=raw.get("position") or None,
            owner=ownership.get(player_id, UNOWNED),
            cross_ref_id=normalize_identifier(raw.get("opta_id")),
            first_name=first_name,
            last_name=last_name,
            injury_status=raw.get("injury_status") or None,
        )
