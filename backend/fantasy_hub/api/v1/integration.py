import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Body

from fantasy_hub.dependencies import get_integration_service
from fantasy_hub.errors import IntegrationError, NoUsablePredictionsError
from fantasy_hub.models import EnrichedPlayer
from fantasy_hub.schemas.integration import (
    ConversionRatioResponse,
    EnrichedPlayerResponse,
    IntegrationErrorResponse,
    IntegrationMetadata,
    IntegrationRequest,
    IntegrationResponse,
)
from fantasy_hub.services.integration_service import RULESETS, IntegrationResult, IntegrationService
from fantasy_hub.utils import sanitize_error_message

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_RESPONSES = {
    422: {"model": IntegrationErrorResponse, "description": "No player had usable predictions"},
    502: {"model": IntegrationErrorResponse, "description": "An upstream source failed"},
}


def _player_response(player: EnrichedPlayer) -> EnrichedPlayerResponse:
    return EnrichedPlayerResponse(
        player_id=player.player_id,
        name=player.name,
        team=player.team,
        owner=player.owner,
        is_available=player.is_available,
        position=player.canonical_position.value,
        position_degraded=player.position_degraded,
        cross_ref_id=player.cross_ref_id,
        is_enhanced=player.is_enhanced,
        current_gw_points=player.current_gw_points,
        next_gw_points=player.next_gw_points,
        season_total_points=player.season_total_points,
        season_avg_points=player.season_avg_points,
        gameweek_points=player.gameweek_points,
        avg_predicted_minutes=player.avg_predicted_minutes,
        ratio_applied=player.ratio_applied,
        source_season_prediction=player.source_season_prediction,
        source_ratio_breakdown=player.source_ratio_breakdown,
        provider_id=player.provider_id,
        match_confidence=player.match_confidence,
        match_method=player.match_method,
        conversion_quality=player.conversion_quality,
        enhancement_error=player.enhancement_error,
        first_name=player.first_name,
        last_name=player.last_name,
        injury_status=player.injury_status,
        price=player.price,
    )


def build_response(result: IntegrationResult) -> IntegrationResponse:
    """Convert an IntegrationResult to the API response shape."""
    ratios = {
        position.value: ConversionRatioResponse(
            position=position.value,
            multiplier=round(ratio.multiplier, 4),
            base_ratio=round(ratio.base_ratio, 4),
            correction=ratio.correction,
            breakdown={k: round(v, 4) for k, v in ratio.breakdown.items()},
            source_values={k: round(v, 4) for k, v in ratio.source_values.items()},
            target_values={k: round(v, 4) for k, v in ratio.target_values.items()},
            degraded=ratio.degraded,
        )
        for position, ratio in result.ratios.items()
    }
    metadata = IntegrationMetadata(
        ruleset=result.ruleset,
        gameweek=result.gameweek,
        stage=result.stage.value,
        cached=result.cached,
        generated_at=result.generated_at,
        total=result.total,
        matched=result.matched,
        unmatched=result.unmatched,
        enhanced=result.enhanced,
        enhancement_errors=result.enhancement_errors,
        match_rate=result.match_rate,
        average_confidence=result.average_confidence,
        ambiguous_matches=result.ambiguous_matches,
        by_method=result.by_method,
        by_confidence=result.by_confidence,
        duplicate_cross_refs=result.duplicate_cross_refs,
        position_distribution=result.position_distribution,
        roster_source_count=result.roster_source_count,
        prediction_source_count=result.prediction_source_count,
        conversion_degraded=result.conversion_degraded,
        ratios=ratios,
    )
    return IntegrationResponse(
        players=[_player_response(p) for p in result.players],
        metadata=metadata,
    )


async def _run_integration(
    service: IntegrationService,
    force_refresh: bool,
    ruleset: Optional[str],
    gameweek: Optional[int],
) -> IntegrationResponse:
    if ruleset is not None and ruleset not in RULESETS:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown ruleset '{ruleset}'; expected one of {', '.join(RULESETS)}",
        )
    try:
        result = await service.run(force_refresh=force_refresh, ruleset=ruleset, gameweek=gameweek)
    except IntegrationError as e:
        status_code = 422 if isinstance(e, NoUsablePredictionsError) else 502
        logger.warning("Integration request failed with %s (HTTP %d)", e.kind, status_code)
        detail = e.to_dict()
        detail["message"] = sanitize_error_message(e.message)
        if e.stage is not None:
            detail["failed_stage"] = e.stage.value
        raise HTTPException(status_code=status_code, detail=detail)
    return build_response(result)


@router.post("/players", response_model=IntegrationResponse, responses=ERROR_RESPONSES)
async def integrate_players(
    request: Optional[IntegrationRequest] = Body(None),
    service: IntegrationService = Depends(get_integration_service),
):
    """Run (or reuse) the merged player integration."""
    request = request or IntegrationRequest()
    return await _run_integration(service, request.force_refresh, request.ruleset, request.gameweek)


@router.get("/players", response_model=IntegrationResponse, responses=ERROR_RESPONSES)
async def get_integrated_players(
    force_refresh: bool = False,
    ruleset: Optional[str] = None,
    gameweek: Optional[int] = Query(None, ge=1),
    service: IntegrationService = Depends(get_integration_service),
):
    """Same as the POST endpoint, with query parameters."""
    return await _run_integration(service, force_refresh, ruleset, gameweek)
