"""
Integration orchestrator.

Runs the pipeline in linear stages:

    FETCH_SOURCES -> MATCH_ALL -> CONVERT_ALL -> ASSEMBLE -> CACHED | FAILED

Source failures are fatal (no partial player list is ever returned); a
single player's conversion failure only downgrades that player to
"unenhanced".
"""
import asyncio
import hashlib
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from fantasy_hub.config import settings
from fantasy_hub.errors import (
    EmptyDataError,
    IntegrationError,
    NoUsablePredictionsError,
    SourceUnavailableError,
)
from fantasy_hub.models import (
    Confidence,
    ConversionRatio,
    EnrichedPlayer,
    MatchReport,
    MatchResult,
    Position,
    PredictedPlayer,
    PredictionSource,
    RosterPlayer,
)
from fantasy_hub.services.cache_service import CacheService
from fantasy_hub.services.identity_matcher import IdentityMatcher
from fantasy_hub.services.position_resolver import PositionResolver
from fantasy_hub.services.score_converter import (
    DEFAULT_TARGET_RULESET,
    SOURCE_RULESET,
    ScoreConverter,
    assess_conversion_quality,
    parse_scoring_settings,
)
from fantasy_hub.utils import round_points, sanitize_error_message

logger = logging.getLogger(__name__)


RULESET_LEAGUE = "league"      # live scoring settings from the league platform
RULESET_DEFAULT = "default"    # hardcoded default table
RULESET_SOURCE = "fpl"         # the provider's own basis
RULESETS = (RULESET_LEAGUE, RULESET_DEFAULT, RULESET_SOURCE)

ROSTER_CACHE_KEY = "sleeper-rosters:{league}"
PREDICTIONS_CACHE_KEY = "ffh-predictions"
MATCHES_CACHE_KEY = "player-matches:{fingerprint}"
RATIOS_CACHE_KEY = "scoring-ratios:{ruleset}"
RESULT_CACHE_KEY = "merged-players:{ruleset}:{gameweek}"


class IntegrationStage(str, Enum):
    FETCH_SOURCES = "fetch_sources"
    MATCH_ALL = "match_all"
    CONVERT_ALL = "convert_all"
    ASSEMBLE = "assemble"
    CACHED = "cached"
    FAILED = "failed"


@dataclass(frozen=True)
class IntegrationResult:
    players: List[EnrichedPlayer]
    ruleset: str
    gameweek: Optional[int]
    ratios: Dict[Position, ConversionRatio]
    conversion_degraded: bool
    total: int
    matched: int
    unmatched: int
    enhanced: int
    enhancement_errors: int
    match_rate: float
    average_confidence: float
    ambiguous_matches: int
    by_method: Dict[str, int] = field(default_factory=dict)
    by_confidence: Dict[str, int] = field(default_factory=dict)
    duplicate_cross_refs: Dict[str, List[str]] = field(default_factory=dict)
    position_distribution: Dict[str, int] = field(default_factory=dict)
    roster_source_count: int = 0
    prediction_source_count: int = 0
    stage: IntegrationStage = IntegrationStage.CACHED
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    cached: bool = False


def _consume_exception(task: asyncio.Task) -> None:
    # Keeps a cancelled sibling fetch from logging "exception never retrieved"
    if not task.cancelled():
        task.exception()


class IntegrationService:
    """
    Sequences fetch -> match -> convert -> cache.

    Collaborators are injected at construction; a missing one is a
    construction-time error.

    ``league_source`` must provide ``fetch_roster_players()`` and
    ``fetch_scoring_settings()``; ``prediction_source`` must provide
    ``fetch_predicted_players()``.
    """

    def __init__(
        self,
        league_source,
        prediction_source,
        matcher: IdentityMatcher,
        converter: ScoreConverter,
        cache: CacheService,
        resolver: Optional[PositionResolver] = None,
        source_timeout: Optional[float] = None,
        max_concurrency: Optional[int] = None,
        season_length: Optional[int] = None,
        current_gameweek: Optional[int] = None,
        league_key: Optional[str] = None,
    ):
        missing = [
            name for name, dependency in (
                ("league_source", league_source),
                ("prediction_source", prediction_source),
                ("matcher", matcher),
                ("converter", converter),
                ("cache", cache),
            )
            if dependency is None
        ]
        if missing:
            raise ValueError(f"IntegrationService missing dependencies: {', '.join(missing)}")

        self.league_source = league_source
        self.prediction_source = prediction_source
        self.matcher = matcher
        self.converter = converter
        self.cache = cache
        self.resolver = resolver or PositionResolver()
        self.source_timeout = source_timeout or settings.source_timeout_seconds
        self.max_concurrency = max(1, max_concurrency or settings.max_concurrency)
        self.season_length = season_length or settings.season_length
        self.current_gameweek = current_gameweek if current_gameweek is not None else settings.current_gameweek
        self.league_key = league_key or getattr(league_source, "league_id", None) or "default"

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def run(
        self,
        force_refresh: bool = False,
        ruleset: Optional[str] = None,
        gameweek: Optional[int] = None,
    ) -> IntegrationResult:
        """
        Run one integration pass.

        ``force_refresh`` skips every cache read but still writes fresh
        results. Raises an IntegrationError subclass on fatal failures and
        ValueError for an unknown ruleset.
        """
        ruleset = ruleset or settings.default_ruleset
        if ruleset not in RULESETS:
            raise ValueError(f"Unknown ruleset '{ruleset}'. Expected one of: {', '.join(RULESETS)}")

        result_key = RESULT_CACHE_KEY.format(ruleset=ruleset, gameweek=gameweek or "auto")
        if not force_refresh:
            cached = self.cache.get(result_key)
            if cached is not None:
                logger.info("Returning cached integration result for %s", result_key)
                return replace(cached, cached=True)

        stage = IntegrationStage.FETCH_SOURCES
        try:
            logger.info("Integration run started (ruleset=%s, force_refresh=%s)", ruleset, force_refresh)
            roster_players, predicted_players = await self._fetch_sources(force_refresh)

            stage = IntegrationStage.MATCH_ALL
            report = self._match_players(roster_players, predicted_players, force_refresh)

            stage = IntegrationStage.CONVERT_ALL
            ratios, degraded = await self._load_ratios(ruleset, force_refresh)
            resolved_gameweek = self.resolve_gameweek(gameweek, predicted_players)
            players = await self._enhance_all(report.results, ratios, resolved_gameweek)

            stage = IntegrationStage.ASSEMBLE
            if not any(p.is_enhanced and p.season_total_points > 0 for p in players):
                raise NoUsablePredictionsError(
                    f"None of {len(players)} players carries a positive prediction "
                    f"({report.matched} matched)"
                )
            result = self._assemble(
                players, report, ratios, degraded, ruleset, resolved_gameweek,
                len(roster_players), len(predicted_players),
            )
        except IntegrationError as e:
            logger.error("Integration run failed at %s: [%s] %s", stage.value, e.kind, e.message)
            e.stage = stage
            raise

        self.cache.set(result_key, result)
        logger.info(
            "Integration run complete: %d players, %d matched (%.1f%%), %d enhanced, gameweek %s",
            result.total, result.matched, result.match_rate, result.enhanced, result.gameweek,
        )
        return result

    # ------------------------------------------------------------------
    # FETCH_SOURCES
    # ------------------------------------------------------------------

    async def _fetch_sources(self, force_refresh: bool) -> Tuple[List[RosterPlayer], List[PredictedPlayer]]:
        """Fetch both sources concurrently; the first failure wins."""
        roster_task = asyncio.create_task(self._fetch_cached(
            ROSTER_CACHE_KEY.format(league=self.league_key),
            self.league_source.fetch_roster_players,
            "sleeper",
            force_refresh,
        ))
        prediction_task = asyncio.create_task(self._fetch_cached(
            PREDICTIONS_CACHE_KEY,
            self.prediction_source.fetch_predicted_players,
            "ffh",
            force_refresh,
        ))
        tasks = [roster_task, prediction_task]
        for task in tasks:
            task.add_done_callback(_consume_exception)

        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    raise task.exception()
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

        return roster_task.result(), prediction_task.result()

    async def _fetch_cached(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[List[Any]]],
        source: str,
        force_refresh: bool,
    ) -> List[Any]:
        if not force_refresh:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        try:
            data = await asyncio.wait_for(fetcher(), timeout=self.source_timeout)
        except asyncio.TimeoutError as e:
            raise SourceUnavailableError(
                f"{source} did not respond within {self.source_timeout:g}s", source=source
            ) from e
        except IntegrationError:
            raise
        except Exception as e:
            raise SourceUnavailableError(
                f"{source} fetch failed: {sanitize_error_message(e)}", source=source
            ) from e

        if not data:
            raise EmptyDataError(f"{source} returned no records", source=source)

        self.cache.set(key, data)
        return data

    # ------------------------------------------------------------------
    # MATCH_ALL
    # ------------------------------------------------------------------

    @staticmethod
    def match_fingerprint(roster_players: List[RosterPlayer], predicted_players: List[PredictedPlayer]) -> str:
        """Hash of every identity-relevant field on both sides. Ownership is excluded."""
        parts = [
            f"r|{p.player_id}|{p.name}|{p.team}|{p.cross_ref_id or ''}" for p in roster_players
        ]
        parts.extend(
            f"p|{p.provider_id}|{p.name}|{p.team}|{p.cross_ref_id or ''}" for p in predicted_players
        )
        return hashlib.md5("\n".join(parts).encode()).hexdigest()

    def _match_players(
        self,
        roster_players: List[RosterPlayer],
        predicted_players: List[PredictedPlayer],
        force_refresh: bool,
    ) -> MatchReport:
        key = MATCHES_CACHE_KEY.format(
            fingerprint=self.match_fingerprint(roster_players, predicted_players)
        )
        if not force_refresh:
            snapshot = self.cache.get(key)
            if snapshot is not None:
                logger.info("Reusing cached identity matches")
                return self._rebuild_report(snapshot, roster_players, predicted_players)

        report = self.matcher.match_all(roster_players, predicted_players)
        self.cache.set(key, self._snapshot_report(report))
        return report

    @staticmethod
    def _snapshot_report(report: MatchReport) -> Dict[str, Any]:
        return {
            "matches": {
                r.roster_player.player_id: (
                    r.predicted_player.provider_id if r.predicted_player else None,
                    r.confidence.value if r.confidence else None,
                    r.method,
                    r.ambiguous,
                    r.candidates_considered,
                )
                for r in report.results
            },
            "duplicate_cross_refs": {k: list(v) for k, v in report.duplicate_cross_refs.items()},
        }

    @staticmethod
    def _rebuild_report(
        snapshot: Dict[str, Any],
        roster_players: List[RosterPlayer],
        predicted_players: List[PredictedPlayer],
    ) -> MatchReport:
        """Re-bind a cached match snapshot to this run's (fresh) player objects."""
        by_provider_id = {p.provider_id: p for p in predicted_players}
        results = []
        for roster_player in roster_players:
            provider_id, confidence, method, ambiguous, considered = snapshot["matches"][roster_player.player_id]
            predicted = by_provider_id.get(provider_id) if provider_id else None
            if predicted is None:
                results.append(MatchResult(
                    roster_player=roster_player,
                    ambiguous=ambiguous,
                    candidates_considered=considered,
                ))
                continue
            results.append(MatchResult(
                roster_player=roster_player,
                predicted_player=predicted,
                confidence=Confidence(confidence),
                method=method,
                ambiguous=ambiguous,
                candidates_considered=considered,
            ))
        return MatchReport.from_results(results, snapshot["duplicate_cross_refs"])

    # ------------------------------------------------------------------
    # CONVERT_ALL
    # ------------------------------------------------------------------

    async def _load_ratios(self, ruleset: str, force_refresh: bool) -> Tuple[Dict[Position, ConversionRatio], bool]:
        key = RATIOS_CACHE_KEY.format(ruleset=ruleset)
        if not force_refresh:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        if ruleset == RULESET_SOURCE:
            target = SOURCE_RULESET
        elif ruleset == RULESET_DEFAULT:
            target = DEFAULT_TARGET_RULESET
        else:
            target = await self._fetch_target_ruleset()

        ratios = self.converter.build_ratios(target)
        degraded = any(r.degraded for r in ratios.values())

        # A degraded table is retried on the short default TTL, not kept for a week
        ttl = settings.cache_ttl_default if degraded else None
        self.cache.set(key, (ratios, degraded), ttl=ttl)
        return ratios, degraded

    async def _fetch_target_ruleset(self) -> Optional[Dict[str, Dict[Position, float]]]:
        """Live league weights, or None (degraded) when they cannot be had."""
        try:
            scoring = await asyncio.wait_for(
                self.league_source.fetch_scoring_settings(),
                timeout=settings.ruleset_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("Scoring settings fetch timed out; using default weights")
            return None
        except IntegrationError as e:
            logger.warning("Scoring settings unavailable (%s); using default weights", e.message)
            return None
        except Exception as e:
            logger.warning(
                "Scoring settings fetch failed (%s); using default weights", sanitize_error_message(e)
            )
            return None

        scoring = scoring or {}
        if not isinstance(scoring, dict):
            logger.warning("League scoring settings are not an object; using default weights")
            return None
        table = parse_scoring_settings(scoring)
        if not table:
            logger.warning("League scoring settings had no comparable categories; using default weights")
            return None
        return table

    def resolve_gameweek(self, requested: Optional[int], predicted_players: List[PredictedPlayer]) -> Optional[int]:
        """Explicit request, then configuration, then the earliest forecast gameweek."""
        if requested is not None:
            return requested
        if self.current_gameweek is not None:
            return self.current_gameweek
        forecast_gameweeks = [
            record.gameweek
            for player in predicted_players
            for record in player.predictions
            if record.source == PredictionSource.FORECAST
        ]
        return min(forecast_gameweeks) if forecast_gameweeks else None

    async def _enhance_all(
        self,
        results: List[MatchResult],
        ratios: Dict[Position, ConversionRatio],
        gameweek: Optional[int],
    ) -> List[EnrichedPlayer]:
        """Bounded fan-out over players; output keeps source order."""
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def enhance(result: MatchResult) -> EnrichedPlayer:
            async with semaphore:
                return self.enhance_player(result, ratios, gameweek)

        return list(await asyncio.gather(*(enhance(r) for r in results)))

    def enhance_player(
        self,
        result: MatchResult,
        ratios: Dict[Position, ConversionRatio],
        gameweek: Optional[int],
    ) -> EnrichedPlayer:
        """Build the EnrichedPlayer for one match result. Never raises."""
        roster = result.roster_player
        predicted = result.predicted_player
        resolution = self.resolver.resolve(
            roster, provider_code=predicted.position_code if predicted else None
        )
        base = dict(
            player_id=roster.player_id,
            name=roster.name,
            team=roster.team,
            owner=roster.owner,
            is_available=roster.is_available,
            canonical_position=resolution.position,
            position_degraded=resolution.degraded,
            cross_ref_id=roster.cross_ref_id,
            match_method=result.method,
            first_name=roster.first_name,
            last_name=roster.last_name,
            injury_status=roster.injury_status,
        )
        if predicted is None:
            return EnrichedPlayer(**base)

        base.update(
            provider_id=predicted.provider_id,
            match_confidence=result.confidence.label if result.confidence else None,
            source_season_prediction=round_points(predicted.season_prediction),
            price=predicted.price,
        )
        try:
            ratio = ratios[resolution.position]
            converted = self.converter.convert(predicted, ratio, gameweek, self.season_length)
            source_total = sum(gw.raw_points for gw in converted.per_gameweek) or predicted.season_prediction
        except Exception as e:
            # One bad record must not sink the run
            logger.warning("Enhancement failed for %s (%s): %s", roster.name, roster.player_id, e)
            return EnrichedPlayer(**base, enhancement_error=sanitize_error_message(e))

        return EnrichedPlayer(
            **base,
            is_enhanced=True,
            current_gw_points=round_points(converted.current_gameweek),
            next_gw_points=round_points(converted.next_gameweek),
            season_total_points=round_points(converted.season_total),
            season_avg_points=round_points(converted.season_average),
            gameweek_points={gw.gameweek: round_points(gw.points) for gw in converted.per_gameweek},
            avg_predicted_minutes=round_points(converted.avg_predicted_minutes),
            ratio_applied=round(ratio.multiplier, 4),
            source_ratio_breakdown={k: round(v, 4) for k, v in ratio.breakdown.items()},
            conversion_quality=assess_conversion_quality(source_total, converted.season_total),
        )

    # ------------------------------------------------------------------
    # ASSEMBLE
    # ------------------------------------------------------------------

    @staticmethod
    def _assemble(
        players: List[EnrichedPlayer],
        report: MatchReport,
        ratios: Dict[Position, ConversionRatio],
        degraded: bool,
        ruleset: str,
        gameweek: Optional[int],
        roster_count: int,
        prediction_count: int,
    ) -> IntegrationResult:
        distribution = {position.value: 0 for position in Position}
        for player in players:
            distribution[player.canonical_position.value] += 1

        return IntegrationResult(
            players=players,
            ruleset=ruleset,
            gameweek=gameweek,
            ratios=ratios,
            conversion_degraded=degraded,
            total=report.total,
            matched=report.matched,
            unmatched=report.unmatched,
            enhanced=sum(1 for p in players if p.is_enhanced),
            enhancement_errors=sum(1 for p in players if p.enhancement_error),
            match_rate=report.match_rate,
            average_confidence=report.average_confidence,
            ambiguous_matches=report.ambiguous,
            by_method=dict(report.by_method),
            by_confidence=dict(report.by_confidence),
            duplicate_cross_refs={k: list(v) for k, v in report.duplicate_cross_refs.items()},
            position_distribution=distribution,
            roster_source_count=roster_count,
            prediction_source_count=prediction_count,
            stage=IntegrationStage.CACHED,
        )
